"""HTTP views for the orders app.

This module contains DRF API views for carts, placement and payments. Views
are kept intentionally small: they validate requests (via Pydantic), load
the order under a row lock, delegate to the ``OrderProcessor`` built by
``providers.build_processor`` and map the outcome to an HTTP response.

Every mutating view runs inside ``transaction.atomic()`` and loads the order
with ``select_for_update()``, so duplicate gateway callbacks and double
submits for the same order are processed one after the other and the
processor's placed/paid/receipt guards see each other's writes.

Idempotency: when an ``Idempotency-Key`` header is provided on the payment
endpoint, the first request is processed and its response stored.
Retries with the same payload replay the stored response; reusing the key
with a different payload returns HTTP 409.
"""

import logging

from django.core.paginator import Paginator
from django.db import transaction
from pydantic import ValidationError
from rest_framework import status
from rest_framework.response import Response
from rest_framework.throttling import ScopedRateThrottle
from rest_framework.views import APIView

from .context import SessionCheckoutContext
from .domain import (
    Address,
    Order,
    OrderItem,
    OrderModifier,
    PaymentGatewayException,
    PaymentStatus,
)
from .idempotency import finalize, get_or_create_idempotent
from .processor import INTENT_PAYMENT
from .providers import build_processor, get_gateway_factory
from .repository import OrderRepository
from .schemas import CreateCartDTO, MakePaymentDTO, OrderReadDTO, PaymentReadDTO

logger = logging.getLogger(__name__)


def _payment_body(payment) -> dict:
    return PaymentReadDTO(
        id=payment.id,
        gateway=payment.gateway,
        status=payment.status.value,
        amount_cents=payment.amount_cents,
        currency=payment.currency,
        reference=payment.reference,
    ).model_dump(mode="json", exclude_none=True)


def _order_body(order: Order, with_payments: bool = False) -> dict:
    dto = OrderReadDTO(
        id=order.id,
        reference=order.reference,
        status=order.status.value,
        amount_cents=order.grand_total(),
        outstanding_cents=order.total_outstanding(include_unsettled=False),
        currency=order.currency,
        placed=order.placed,
        paid=order.paid,
        payments=[PaymentReadDTO(**_payment_body(p)) for p in order.payments] if with_payments else None,
    )
    return dto.model_dump(mode="json", exclude_none=True)


def _not_found() -> Response:
    return Response({"detail": "NOT_FOUND"}, status=status.HTTP_404_NOT_FOUND)


class OrdersPingView(APIView):
    """Simple health-check endpoint for the orders module."""

    def get(self, request):
        return Response({"ok": True})


class OrdersCollectionView(APIView):
    """List orders and create carts.

    ``POST`` stores a new cart and remembers it as the session's current
    cart, which placement clears again.
    """

    throttle_classes = [ScopedRateThrottle]

    def get_throttles(self):
        # DRF evaluates throttles in initial(), before get/post
        self.throttle_scope = "orders_list" if self.request.method == "GET" else "orders_create"
        return [throttle() for throttle in self.throttle_classes]

    def get(self, request):
        qs = OrderRepository().recent()
        page = int(request.GET.get("page", 1))
        page_size = int(request.GET.get("page_size", 20))
        p = Paginator(qs, page_size)
        page_obj = p.get_page(page)

        results = []
        for o in page_obj.object_list:
            dto = OrderReadDTO(
                id=o.id,
                reference=o.reference,
                status=o.status,
                amount_cents=o.total_cents,
                currency=o.currency,
                placed=o.placed,
                paid=o.paid,
            )
            results.append(dto.model_dump(mode="json", exclude_none=True))

        return Response(
            {
                "count": p.count,
                "page": page_obj.number,
                "page_size": page_size,
                "results": results,
            },
            status=200,
        )

    def post(self, request):
        """Create a cart.

        Returns:
            Response: 201 with the order read model, or 400 for DTO
            validation errors.
        """
        try:
            dto = CreateCartDTO.model_validate(request.data)
        except ValidationError as e:
            return Response({"detail": str(e)}, status=status.HTTP_400_BAD_REQUEST)

        cart = Order(
            items=[
                OrderItem(sku=i.sku, title=i.title, quantity=i.quantity, unit_price_cents=i.unit_price_cents)
                for i in dto.items
            ],
            modifiers=[OrderModifier(**m.model_dump()) for m in dto.modifiers],
            currency=dto.currency,
            locale=dto.locale,
            first_name=dto.first_name,
            surname=dto.surname,
            email=dto.email,
            company=dto.company,
            billing_address=Address(**dto.billing_address.model_dump()),
            shipping_address=Address(**dto.shipping_address.model_dump()),
        )
        context = SessionCheckoutContext.from_request(request)
        order = OrderRepository().create_cart(cart)
        context.set_cart(order)
        logger.info("cart created", extra={"order_id": str(order.id), "reference": order.reference})
        return Response(_order_body(order), status=status.HTTP_201_CREATED)


class RetrieveOrderView(APIView):
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "orders_detail"

    def get(self, request, oid):
        order = OrderRepository().get(oid)
        if order is None:
            return _not_found()
        return Response(_order_body(order, with_payments=True), status=200)


class OrderPaymentsView(APIView):
    """Start a payment for an order.

    Returns one of:
        - 201 with the order and payment when the payment completed onsite.
        - 202 with ``redirect_url`` for offsite gateways.
        - 402 with the gateway message when the payment was declined.
        - 400 when the payment could not be created (unsupported gateway,
          order not payable).
        - 404 for unknown orders.
        - 503 when the gateway could not be reached.
        - 409 for idempotency conflicts; stored responses are replayed
          with an ``Idempotent-Replay`` header.
    """

    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "orders_payments"

    def post(self, request, oid):
        idem_key = request.headers.get("Idempotency-Key")

        try:
            dto = MakePaymentDTO.model_validate(request.data)
        except ValidationError as e:
            return Response({"detail": str(e)}, status=status.HTTP_400_BAD_REQUEST)

        rec = None
        if idem_key:
            try:
                existing, rec = get_or_create_idempotent(idem_key, {"order": str(oid), **dto.model_dump()})
            except ValueError:
                return Response({"detail": "IDEMPOTENCY_CONFLICT"}, status=status.HTTP_409_CONFLICT)
            if existing:
                if not rec.response_status:
                    return Response({"detail": "IDEMPOTENCY_IN_PROGRESS"}, status=status.HTTP_409_CONFLICT)
                resp = Response(rec.response_body, status=rec.response_status)
                resp["Idempotent-Replay"] = "true"
                return resp

        repo = OrderRepository()
        try:
            with transaction.atomic():
                order = repo.get(oid, lock=True)
                if order is None:
                    body = {"detail": "NOT_FOUND"}
                    if rec:
                        finalize(rec, status.HTTP_404_NOT_FOUND, body)
                    return Response(body, status=status.HTTP_404_NOT_FOUND)
                processor = build_processor(order, request, repository=repo)
                known_payments = len(order.payments)
                response = processor.make_payment(dto.gateway, dto.data, dto.success_url, dto.cancel_url)
        except Exception:
            # nothing was stored for this key, so a retry starts over
            if rec:
                rec.delete()
            raise

        if response is None:
            # A payment was created, so the gateway itself failed.
            unavailable = len(order.payments) > known_payments
            status_code = status.HTTP_503_SERVICE_UNAVAILABLE if unavailable else status.HTTP_400_BAD_REQUEST
            body = {"detail": processor.error}
        elif response.is_error:
            status_code = status.HTTP_402_PAYMENT_REQUIRED
            body = {"detail": processor.error, "payment": _payment_body(response.payment)}
        elif response.is_redirect:
            status_code = status.HTTP_202_ACCEPTED
            body = {
                "order": _order_body(order),
                "payment": _payment_body(response.payment),
                "redirect_url": response.target_url,
            }
        else:
            status_code = status.HTTP_201_CREATED
            body = {"order": _order_body(order), "payment": _payment_body(response.payment)}

        if rec:
            finalize(rec, status_code, body, order_id=order.id)
        return Response(body, status=status_code)


class PlaceOrderView(APIView):
    """Place an order without starting a payment.

    Used for orders that need no payment (zero totals) or are paid
    outside the shop. When nothing is outstanding after placement, payment
    completion runs straight away.
    """

    def post(self, request, oid):
        repo = OrderRepository()
        with transaction.atomic():
            order = repo.get(oid, lock=True)
            if order is None:
                return _not_found()
            processor = build_processor(order, request, repository=repo)
            if not processor.place_order():
                return Response({"detail": processor.error}, status=status.HTTP_409_CONFLICT)
            if order.total_outstanding(include_unsettled=False) <= 0:
                processor.complete_payment()
        return Response(_order_body(order), status=status.HTTP_200_OK)


class PaymentCompletionView(APIView):
    """Gateway return/callback for offsite payments.

    Refreshes the payment from the provider, then completes the order when
    the payment was captured, or places it when it was only authorized.
    Repeated callbacks are harmless: settled payments are not fetched again
    and completion does nothing once the order is paid.
    """

    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "payments_callback"

    def post(self, request, pid):
        repo = OrderRepository()
        with transaction.atomic():
            order = repo.get_for_payment(pid, lock=True)
            if order is None:
                return _not_found()
            payment = repo.find_payment(order, pid)
            processor = build_processor(order, request, repository=repo)

            try:
                service = get_gateway_factory().get_service(payment, INTENT_PAYMENT)
                response = service.complete(request.data or {})
            except PaymentGatewayException as ex:
                logger.warning("payment completion failed", extra={"payment_id": str(pid), "error": str(ex)})
                return Response({"detail": str(ex)}, status=status.HTTP_503_SERVICE_UNAVAILABLE)
            repo.save_payment(order, payment)

            if payment.status == PaymentStatus.CAPTURED:
                processor.complete_payment()
            elif payment.status == PaymentStatus.AUTHORIZED:
                processor.authorize_payment()

        body = {"order": _order_body(order), "payment": _payment_body(payment)}
        if response.is_error:
            return Response(
                {"detail": response.message or "PAYMENT_FAILED", **body},
                status=status.HTTP_402_PAYMENT_REQUIRED,
            )
        return Response(body, status=status.HTTP_200_OK)
