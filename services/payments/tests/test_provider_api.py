"""API tests for the sandbox payment provider."""
import uuid


def test_health(api):
    r = api.get("/health")
    assert r.status_code == 200
    assert r.json() == {"ok": True}


def test_purchase_onsite_is_captured(api, purchase_body):
    r = api.post("/purchase", json=purchase_body)
    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "captured"
    uuid.UUID(body["reference"])

    r = api.get(f"/transactions/{body['reference']}")
    assert r.json()["status"] == "captured"


def test_authorize_onsite_is_authorized(api, purchase_body):
    r = api.post("/authorize", json=purchase_body)
    assert r.status_code == 200
    assert r.json()["status"] == "authorized"


def test_declined_card(api, purchase_body):
    r = api.post("/purchase", json={**purchase_body, "number": "4000 0000 0000 0002"})
    assert r.status_code == 402
    body = r.json()
    assert body["status"] == "declined"
    assert body["message"] == "Card declined"


def test_offsite_flow(api, purchase_body):
    r = api.post(
        "/purchase",
        json={**purchase_body, "offsite": True, "return_url": "http://shop/api/orders/1/"},
    )
    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "redirect"
    assert body["redirect_url"].endswith(f"/checkout/{body['reference']}")

    ref = body["reference"]
    assert api.get(f"/transactions/{ref}").json()["status"] == "pending"

    r = api.post(f"/checkout/{ref}/confirm")
    assert r.status_code == 200
    assert r.json()["status"] == "captured"
    assert r.json()["redirect_url"] == "http://shop/api/orders/1/"

    assert api.get(f"/transactions/{ref}").json()["status"] == "captured"


def test_offsite_authorize_confirms_to_authorized(api, purchase_body):
    ref = api.post("/authorize", json={**purchase_body, "offsite": True}).json()["reference"]
    r = api.post(f"/checkout/{ref}/confirm")
    assert r.json()["status"] == "authorized"


def test_confirm_declined_transaction(api, purchase_body):
    ref = api.post("/purchase", json={**purchase_body, "number": "0002"}).json()["reference"]
    r = api.post(f"/checkout/{ref}/confirm")
    assert r.status_code == 409


def test_unknown_transaction(api):
    ref = uuid.uuid4()
    assert api.get(f"/transactions/{ref}").status_code == 404
    assert api.post(f"/checkout/{ref}/confirm").status_code == 404


def test_idempotent_replay(api, purchase_body):
    key = f"R100-{uuid.uuid4().hex[:8]}"
    r1 = api.post("/purchase", json=purchase_body, headers={"Idempotency-Key": key})
    r2 = api.post("/purchase", json=purchase_body, headers={"Idempotency-Key": key})
    assert r1.status_code == r2.status_code == 200
    assert r1.json()["reference"] == r2.json()["reference"]


def test_idempotency_conflict(api, purchase_body):
    key = f"R100-{uuid.uuid4().hex[:8]}"
    api.post("/purchase", json=purchase_body, headers={"Idempotency-Key": key})
    r = api.post("/purchase", json={**purchase_body, "amount_cents": 999}, headers={"Idempotency-Key": key})
    assert r.status_code == 409
    assert r.json()["detail"] == "IDEMPOTENCY_CONFLICT"


def test_invalid_amount(api, purchase_body):
    r = api.post("/purchase", json={**purchase_body, "amount_cents": 0})
    assert r.status_code == 422


def test_request_id_is_echoed(api):
    r = api.get("/health", headers={"X-Request-ID": "rid-9"})
    assert r.headers["X-Request-ID"] == "rid-9"
