"""Sandbox payment provider API built with FastAPI.

This service stands in for a third-party card processor during development
and integration tests. It supports direct purchases, authorizations and an
offsite flow where the shopper is redirected to a provider page and
approves the payment there. Validation is performed with Pydantic models,
while persistence is delegated to the SQLAlchemy-backed ``repo`` module.

Sandbox rules:
- Card numbers ending in ``0002`` are declined with HTTP 402.
- Offsite requests stay ``pending`` until ``/checkout/{reference}/confirm``.
- Requests carrying an ``Idempotency-Key`` header are processed at most once.
"""

import logging
import os
import time
import uuid
from typing import Annotated, Optional

from fastapi import FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field, constr
from pythonjsonlogger import jsonlogger
from sqlalchemy import select, text
from sqlalchemy.exc import IntegrityError

from repo import SETTLED_STATUS, IdempotencyKey, PaymentsRepo, canonical_hash, engine, get_session

app = FastAPI(title="Sandbox Payments Provider")

Currency = constr(pattern=r"^[A-Z]{3}$")
PUBLIC_URL = os.getenv("PAYMENTS_PUBLIC_URL", "http://localhost:9002")
DECLINED_SUFFIX = "0002"


@app.on_event("startup")
def _startup_db():
    # short active wait until the DB accepts connections
    deadline = time.time() + 30
    while True:
        try:
            with engine.connect() as conn:
                conn.execute(text("select 1"))
            break
        except Exception:
            if time.time() > deadline:
                raise
            time.sleep(1)


logger = logging.getLogger("payments")
if not logger.handlers:
    h = logging.StreamHandler()
    h.setFormatter(jsonlogger.JsonFormatter("%(asctime)s %(levelname)s %(name)s %(message)s %(request_id)s"))
    logger.addHandler(h)
    logger.setLevel(logging.INFO)


class PaymentRequest(BaseModel):
    """Request body for purchase and authorize.

    Attributes:
        amount_cents: Positive payment amount in minor currency units (cents).
        currency: Three-letter ISO currency code (e.g., EUR, USD).
        transactionId: The shop's transaction id.
        offsite: Redirect the shopper to the sandbox checkout page.
        number: Card number; only its last digits matter in the sandbox.

    Address and customer fields sent by the shop are accepted and ignored.
    """

    model_config = ConfigDict(extra="allow")

    amount_cents: int = Field(gt=0)
    currency: Currency
    transactionId: Optional[str] = Field(default=None, max_length=64)
    offsite: bool = False
    return_url: Optional[str] = None
    cancel_url: Optional[str] = None
    number: Optional[str] = None


class TransactionResponse(BaseModel):
    """Provider answer understood by the shop's gateway client."""

    status: str
    reference: uuid.UUID
    redirect_url: Optional[str] = None
    message: Optional[str] = None


def _answer(tx, started: bool = False) -> TransactionResponse | JSONResponse:
    # a freshly started offsite transaction tells the shop where to send the shopper
    redirect = started and tx.status == "pending" and tx.offsite
    body = TransactionResponse(
        status="redirect" if redirect else tx.status,
        reference=tx.id,
        redirect_url=f"{PUBLIC_URL}/checkout/{tx.id}" if redirect else None,
        message=tx.message,
    )
    if tx.status == "declined":
        return JSONResponse(status_code=402, content=body.model_dump(mode="json"))
    return body


def _start(req: PaymentRequest, intent: str, idempotency_key: Optional[str]):
    if req.number and req.number.replace(" ", "").endswith(DECLINED_SUFFIX):
        status, message = "declined", "Card declined"
    elif req.offsite:
        status, message = "pending", None
    else:
        status, message = SETTLED_STATUS[intent], "Payment successful"

    payload_hash = canonical_hash({"intent": intent, **req.model_dump()})
    repo = PaymentsRepo()

    with get_session() as s:
        if idempotency_key:
            try:
                s.add(IdempotencyKey(key=idempotency_key, request_hash=payload_hash))
                s.commit()
            except IntegrityError:
                s.rollback()
                rec = s.execute(
                    select(IdempotencyKey).where(IdempotencyKey.key == idempotency_key).with_for_update()
                ).scalars().first()
                if not rec:
                    raise HTTPException(status_code=500, detail="IDEMPOTENCY_LOOKUP_ERROR")
                if rec.request_hash != payload_hash:
                    raise HTTPException(status_code=409, detail="IDEMPOTENCY_CONFLICT")
                if rec.transaction_id:
                    return _answer(repo.get_tx(s, rec.transaction_id), started=True)

        tx = repo.create_tx(
            s,
            intent=intent,
            status=status,
            amount_cents=req.amount_cents,
            currency=req.currency,
            offsite=req.offsite,
            shop_transaction_id=req.transactionId,
            return_url=req.return_url,
            message=message,
        )
        if idempotency_key:
            rec = s.get(IdempotencyKey, idempotency_key)
            rec.transaction_id = tx.id
            s.add(rec)
        s.commit()
        logger.info(
            "transaction created",
            extra={"request_id": "-", "reference": str(tx.id), "intent": intent, "status": tx.status},
        )
        return _answer(tx, started=True)


@app.get("/health")
def health():
    """Liveness/health probe endpoint."""
    return {"ok": True}


@app.post("/purchase", response_model=TransactionResponse)
def purchase(
    req: PaymentRequest,
    idempotency_key: Annotated[Optional[str], Header(alias="Idempotency-Key")] = None,
):
    """Charge a payment in one step (or start an offsite purchase)."""
    return _start(req, "purchase", idempotency_key)


@app.post("/authorize", response_model=TransactionResponse)
def authorize(
    req: PaymentRequest,
    idempotency_key: Annotated[Optional[str], Header(alias="Idempotency-Key")] = None,
):
    """Reserve funds without capturing them (or start an offsite authorization)."""
    return _start(req, "authorize", idempotency_key)


@app.post("/checkout/{reference}/confirm", response_model=TransactionResponse)
def confirm(reference: uuid.UUID):
    """Simulate the shopper approving the payment on the offsite page.

    Returns the settled transaction with ``redirect_url`` pointing back to
    the shop's return URL.

    Raises:
        HTTPException: 404 for unknown references, 409 for declined ones.
    """
    repo = PaymentsRepo()
    with get_session() as s:
        tx = repo.get_tx(s, reference, lock=True)
        if tx is None:
            raise HTTPException(status_code=404, detail="NOT_FOUND")
        if tx.status == "declined":
            raise HTTPException(status_code=409, detail="TRANSACTION_DECLINED")
        repo.settle(s, tx)
        s.commit()
        return TransactionResponse(status=tx.status, reference=tx.id, redirect_url=tx.return_url)


@app.get("/transactions/{reference}", response_model=TransactionResponse)
def get_transaction(reference: uuid.UUID):
    """Return the current state of a transaction."""
    with get_session() as s:
        tx = PaymentsRepo().get_tx(s, reference)
        if tx is None:
            raise HTTPException(status_code=404, detail="NOT_FOUND")
        return _answer(tx)


@app.middleware("http")
async def add_request_id(request: Request, call_next):
    rid = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = rid
    try:
        response = await call_next(request)
    finally:
        logger.info("request handled", extra={"request_id": rid, "path": request.url.path, "method": request.method})
    response.headers["X-Request-ID"] = rid
    return response
