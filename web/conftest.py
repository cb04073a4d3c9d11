import pytest

CART_URL = "/api/orders/"


@pytest.fixture(autouse=True)
def use_stubs_for_tests(settings):
    from django.core.cache import cache

    from apps.orders.http_adapters import provider_cb

    settings.USE_HTTP_ADAPTERS = False
    settings.SHOP_ADMIN_EMAIL = "admin@example.com"
    # throttle counters and breaker state are process-wide
    cache.clear()
    provider_cb.on_success()


@pytest.fixture(autouse=True)
def fake_gateway(monkeypatch):
    """Fresh in-process sandbox client, shared by every processor in the test."""
    from apps.orders import providers
    from apps.orders.adapters import FakeGatewayClient

    client = FakeGatewayClient()
    monkeypatch.setattr(providers, "_fake_client", client)
    return client


@pytest.fixture
def cart_payload():
    return {
        "items": [{"sku": "SKU1", "title": "Tea pot", "quantity": 2, "unit_price_cents": 1500}],
        "modifiers": [
            {"name": "Shipping", "amount_cents": 500, "required": True, "required_before_place": True}
        ],
        "currency": "EUR",
        "locale": "en-us",
        "first_name": "Jo",
        "surname": "Bloggs",
        "email": "jo@example.com",
        "billing_address": {"address": "1 Main St", "city": "Dublin", "country": "IE"},
    }


@pytest.fixture
def create_cart(client, cart_payload):
    """Create a cart through the API and return its JSON body."""

    def _create(**overrides):
        r = client.post(CART_URL, data={**cart_payload, **overrides}, content_type="application/json")
        assert r.status_code == 201, r.content
        return r.json()

    return _create
