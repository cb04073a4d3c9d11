"""Order processor: placement and payment completion.

The processor takes an order from cart to placed and paid. It creates
payments, hands them to the payment gateway adapter, places the order when
an onsite payment returns, and finalizes the paid status once every payment
has been captured. Failures are reported through a single error string
(``OrderProcessor.error``) and falsy return values rather than exceptions.

Offsite (redirect) payments place the order later, during the completion
callback, because the processor does not survive the redirect round-trip.
"""

import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from .domain import (
    ON_PAID,
    ON_PAYMENT,
    ON_PLACE_ORDER,
    CheckoutContext,
    NotificationPort,
    Order,
    OrderHooks,
    OrderRepositoryPort,
    OrderStatus,
    Payment,
    PaymentGatewayException,
    PaymentGatewayPort,
    PaymentStatus,
    ProcessorConfig,
    ServiceResponsePort,
)

logger = logging.getLogger(__name__)

INTENT_PAYMENT = "payment"
UNSPECIFIED_PAYMENT_ERROR = "An unspecified payment error occurred. Please check the payment messages."


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OrderProcessor:
    """Places orders and drives their payments.

    Args:
        order: The order to work on. May be None, in which case every
            operation fails with an error.
        gateways: Payment gateway adapter used to create payment services.
        notifier: Sends receipts, confirmations and admin notifications.
        repository: Persists the order and its parts.
        context: Request-scoped shopper context (customer, cart, session).
        config: Shop behaviour switches.
        hooks: Observer registry for ``on_place_order``, ``on_payment``
            and ``on_paid``.
        now: Clock used for the placed/paid/receipt timestamps.
    """

    def __init__(
        self,
        order: Optional[Order],
        *,
        gateways: PaymentGatewayPort,
        notifier: NotificationPort,
        repository: OrderRepositoryPort,
        context: CheckoutContext,
        config: ProcessorConfig = ProcessorConfig(),
        hooks: Optional[OrderHooks] = None,
        now: Callable[[], datetime] = _utcnow,
    ):
        self.order = order
        self.gateways = gateways
        self.notifier = notifier
        self.repository = repository
        self.context = context
        self.config = config
        self.hooks = hooks or OrderHooks()
        self.now = now
        self._error: Optional[str] = None

    @property
    def error(self) -> Optional[str]:
        """The latest human-readable failure reason, if any."""
        return self._error

    def _fail(self, message: str) -> None:
        self._error = message

    def get_return_url(self) -> str:
        """URL the shopper returns to after any offsite gateway redirect."""
        return self.order.link()

    # ---- Payments ----

    def make_payment(
        self,
        gateway: str,
        data: Optional[dict] = None,
        success_url: Optional[str] = None,
        cancel_url: Optional[str] = None,
    ) -> Optional[ServiceResponsePort]:
        """Create a payment and initiate it with the gateway.

        Args:
            gateway: Identifier of a configured gateway.
            data: Gateway specific data, usually submitted by the shopper.
            success_url: Where to send the shopper after a successful offsite
                payment. Defaults to the order link.
            cancel_url: Where to send the shopper after a cancelled or failed
                offsite payment.

        Returns:
            The gateway service response, or None when the payment could not
            be created or the gateway raised. Error responses are returned
            as well, with ``error`` populated.
        """
        payment = self.create_payment(gateway)
        if not payment:
            return None

        # The adapter picks an authorize or purchase service from the gateway config.
        service = self.gateways.get_service(payment, INTENT_PAYMENT)
        service.set_return_url(success_url or self.get_return_url())
        if cancel_url:
            service.set_cancel_url(cancel_url)
        service.on_captured(lambda _payment: self.complete_payment())

        try:
            response = service.initiate(self.gateway_data(data or {}))
        except PaymentGatewayException as ex:
            logger.warning(
                "payment initiation failed",
                extra={"order_id": str(self.order.id), "gateway": gateway, "error": str(ex)},
            )
            payment.status = PaymentStatus.FAILED
            payment.message = str(ex)
            self.repository.save_payment(self.order, payment)
            self._fail(str(ex))
            return None

        self.repository.save_payment(self.order, payment)

        if response.is_error:
            self._fail(response.message or UNSPECIFIED_PAYMENT_ERROR)
            logger.info(
                "payment declined",
                extra={"order_id": str(self.order.id), "gateway": gateway, "error": self._error},
            )
            return response

        # Onsite payments return here without a later callback to place the order.
        if not response.is_redirect and response.payment.status != PaymentStatus.CAPTURED:
            self.place_order()

        return response

    def transaction_id(self) -> str:
        """Order reference, suffixed with ``-N`` for the N-th retry payment."""
        prior = len(self.order.payments) - 1
        return self.order.reference + (f"-{prior}" if prior > 0 else "")

    def gateway_data(self, custom_data: dict) -> dict:
        """Merge custom gateway data with the order-derived fields.

        Custom data is applied first, so the order-derived fields win when
        both define the same key.
        """
        order = self.order
        billing = order.billing_address
        shipping = order.shipping_address
        return {
            **custom_data,
            "transactionId": self.transaction_id(),
            "firstName": order.first_name,
            "lastName": order.surname,
            "email": order.email,
            "company": order.company,
            "billingAddress1": billing.address,
            "billingAddress2": billing.address_line2,
            "billingCity": billing.city,
            "billingPostcode": billing.postal_code,
            "billingState": billing.state,
            "billingCountry": billing.country,
            "billingPhone": billing.phone,
            "shippingAddress1": shipping.address,
            "shippingAddress2": shipping.address_line2,
            "shippingCity": shipping.city,
            "shippingPostcode": shipping.postal_code,
            "shippingState": shipping.state,
            "shippingCountry": shipping.country,
            "shippingPhone": shipping.phone,
        }

    def create_payment(self, gateway: str) -> Optional[Payment]:
        """Create a payment for the outstanding balance and attach it.

        Returns:
            The new payment, or None when the gateway is not supported, the
            current customer cannot pay for the order, or a cart could not be
            placed yet (see ``can_place``).
        """
        if not self.gateways.is_supported(gateway):
            self._fail(f"`{gateway}` isn't a valid payment gateway.")
            return None
        if self.order is None or not self.order.can_pay(self.context.customer):
            self._fail("Order can't be paid for.")
            return None
        # capture places a cart, so it must be placeable up front
        if self.order.is_cart() and not self.can_place(self.order):
            return None

        payment = Payment(
            gateway=gateway,
            amount_cents=self.order.total_outstanding(include_unsettled=True),
            currency=self.config.base_currency,
        )
        self.order.payments.append(payment)
        self.repository.save_payment(self.order, payment)
        logger.info(
            "payment created",
            extra={
                "order_id": str(self.order.id),
                "payment_id": str(payment.id),
                "gateway": gateway,
                "amount_cents": payment.amount_cents,
            },
        )
        return payment

    def complete_payment(self) -> None:
        """Finalize the order after a payment has been captured.

        Safe to call repeatedly: once the order carries a ``paid`` timestamp
        the call does nothing.
        """
        order = self.order
        if order is None:
            self._fail("A new order has not yet been started.")
            return
        if order.paid:
            return

        self.hooks.fire(ON_PAYMENT, order)
        if self.can_place(order):
            self.place_order()
        elif order.locale:
            self.context.install_locale(order.locale)

        grand_total = order.grand_total()
        if (grand_total > 0 and order.total_outstanding(include_unsettled=False) <= 0) or (
            grand_total == 0 and self.config.allow_zero_order_total
        ):
            order.status = OrderStatus.PAID
            order.paid = self.now()
            self.repository.save(order)
            for item in order.items:
                item.on_payment()
                self.repository.save_item(order, item)
            self.hooks.fire(ON_PAID, order)
            logger.info("order paid", extra={"order_id": str(order.id), "reference": order.reference})

        if not order.receipt_sent and self.notifier.send_receipt(order):
            order.receipt_sent = self.now()
            self.repository.save(order)

    def authorize_payment(self) -> bool:
        """Place the order once a payment has been authorized offsite."""
        if not self.can_place(self.order):
            return False
        return self.place_order()

    # ---- Placement ----

    def can_place(self, order: Optional[Order]) -> bool:
        """Return whether the order can be placed, recording why not."""
        if order is None:
            self._fail("No order to process.")
            return False
        if not order.is_cart():
            self._fail("Order is not a cart.")
            return False
        if not order.items:
            self._fail("Order has no items.")
            return False
        pending = order.pending_modifiers()
        if pending:
            self._fail("Order has pending charges: %s." % ", ".join(m.name for m in pending))
            return False
        return True

    def place_order(self) -> bool:
        """Take the order from cart to awaiting payment (or paid).

        Returns:
            True on success, False when the order cannot be placed; the
            reason is available from ``error``.
        """
        order = self.order
        if order is None:
            self._fail("A new order has not yet been started.")
            return False
        if not self.can_place(order):
            return False

        if order.locale:
            self.context.install_locale(order.locale)

        if self.context.current_cart_id() == order.id:
            self.context.clear_cart()

        if order.total_outstanding(include_unsettled=False) > 0:
            order.status = OrderStatus.UNPAID
        else:
            order.status = OrderStatus.PAID

        if not order.placed:
            order.placed = self.now()
            order.ip_address = self.context.client_ip

        # Lock in line totals and charges before they can no longer change.
        for item in order.items:
            item.on_placement()
            self.repository.save_item(order, item)
        for modifier in order.modifiers:
            modifier.on_placement()
            self.repository.save_modifier(order, modifier)

        customer = self.context.customer
        if customer is not None:
            if order.member_id is None:
                order.member_id = customer.id
            if self.config.customer_group:
                customer.add_to_group(self.config.customer_group)

        self.hooks.fire(ON_PLACE_ORDER, order)
        self.repository.save(order)

        if self.config.send_confirmation and not order.receipt_sent:
            self.notifier.send_confirmation(order)
        if self.config.send_admin_notification:
            self.notifier.send_admin_notification(order)

        self.context.add_session_order(order)
        logger.info(
            "order placed",
            extra={"order_id": str(order.id), "reference": order.reference, "status": order.status.value},
        )
        return True
