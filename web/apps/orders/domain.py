"""Domain models, ports and hooks for checkout orders.

This module contains the dataclasses that describe an order while it moves
from cart to placed and paid, the protocol definitions (ports) for the
collaborators the order processor relies on (payment gateway, notifier,
checkout context, repository), and a small observer registry used for
extension points. Nothing in here touches Django or the network.
"""

import uuid
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, List, Optional, Protocol


# ---- Enums ----
class OrderStatus(str, Enum):
    """Enumeration of the possible order statuses.

    Orders start as ``CART`` and move forward only. Placement moves a cart to
    ``UNPAID`` or ``PAID``; the remaining statuses belong to fulfilment.
    """

    CART = "Cart"
    UNPAID = "Unpaid"
    PAID = "Paid"
    PROCESSING = "Processing"
    SENT = "Sent"
    COMPLETE = "Complete"
    ADMIN_CANCELLED = "AdminCancelled"
    MEMBER_CANCELLED = "MemberCancelled"


PAYABLE_STATUSES = (
    OrderStatus.CART,
    OrderStatus.UNPAID,
    OrderStatus.PROCESSING,
    OrderStatus.SENT,
)


class PaymentStatus(str, Enum):
    """Lifecycle of a single payment attempt against a gateway."""

    CREATED = "Created"
    PENDING_AUTHORIZATION = "PendingAuthorization"
    AUTHORIZED = "Authorized"
    PENDING_PURCHASE = "PendingPurchase"
    PENDING_CAPTURE = "PendingCapture"
    CAPTURED = "Captured"
    REFUNDED = "Refunded"
    VOID = "Void"
    FAILED = "Failed"


# ---- Hook names ----
ON_PLACE_ORDER = "on_place_order"
ON_PAYMENT = "on_payment"
ON_PAID = "on_paid"


# ---- Errors ----
class PaymentGatewayException(Exception):
    """Raised by gateway adapters when a payment cannot be initiated.

    The order processor catches this family of exceptions and turns the
    message into its error string.
    """


class GatewayConnectionError(PaymentGatewayException):
    """The payment provider could not be reached or answered with a 5xx."""


class InvalidPaymentStateError(PaymentGatewayException):
    """The payment is not in a state that allows the requested operation."""


# ---- Entities / DTOs ----
@dataclass(frozen=True)
class Address:
    """Postal address used for billing and shipping."""

    address: str = ""
    address_line2: str = ""
    city: str = ""
    postal_code: str = ""
    state: str = ""
    country: str = ""
    phone: str = ""


@dataclass
class OrderItem:
    """A single line item in an order.

    Attributes:
        sku: The stock-keeping unit identifier for the product.
        quantity: Number of units requested for this SKU.
        unit_price_cents: Price of one unit in minor units.
        calculated_total_cents: Line total frozen at placement; None while
            the order is still a cart.
    """

    sku: str
    quantity: int
    unit_price_cents: int = 0
    title: str = ""
    id: Optional[int] = None
    calculated_total_cents: Optional[int] = None
    placed: bool = False
    paid_for: bool = False

    @property
    def total_cents(self) -> int:
        if self.calculated_total_cents is not None:
            return self.calculated_total_cents
        return self.unit_price_cents * self.quantity

    def on_placement(self) -> None:
        self.calculated_total_cents = self.unit_price_cents * self.quantity
        self.placed = True

    def on_payment(self) -> None:
        self.paid_for = True


@dataclass
class OrderModifier:
    """A contributor to the order total, such as shipping or a discount.

    ``amount_cents`` is None while the value has not been determined yet
    (for example, shipping before an address is known). Negative amounts
    reduce the total.
    """

    name: str
    amount_cents: Optional[int] = None
    required: bool = False
    required_before_place: bool = False
    sort: int = 0
    id: Optional[int] = None
    placed: bool = False

    @property
    def is_pending(self) -> bool:
        return self.amount_cents is None

    def on_placement(self) -> None:
        if self.amount_cents is None:
            self.amount_cents = 0
        self.placed = True


@dataclass
class Payment:
    """A payment attempt owned by exactly one order."""

    gateway: str
    amount_cents: int
    currency: str
    status: PaymentStatus = PaymentStatus.CREATED
    id: uuid.UUID = field(default_factory=uuid.uuid4)
    reference: Optional[str] = None
    message: str = ""
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class Customer:
    """An authenticated shopper.

    ``groups`` tracks group membership for in-process use; the Django
    wiring provides its own customer backed by ``auth.User``.
    """

    id: int
    email: str = ""
    first_name: str = ""
    surname: str = ""
    groups: set = field(default_factory=set)

    def add_to_group(self, name: str) -> None:
        self.groups.add(name)


@dataclass
class Order:
    """Container for order data.

    Attributes:
        id: Persistent identifier for the order.
        reference: Human readable reference (e.g. ``R100``) used as the
            base of gateway transaction ids.
        status: Current OrderStatus.
        placed: When the order was placed; set at most once.
        paid: When the order was fully paid; None until then.
        receipt_sent: When the receipt was sent; None until then.
    """

    id: uuid.UUID = field(default_factory=uuid.uuid4)
    reference: str = ""
    status: OrderStatus = OrderStatus.CART
    placed: Optional[datetime] = None
    paid: Optional[datetime] = None
    receipt_sent: Optional[datetime] = None
    locale: str = ""
    ip_address: Optional[str] = None
    member_id: Optional[int] = None
    first_name: str = ""
    surname: str = ""
    email: str = ""
    company: str = ""
    billing_address: Address = field(default_factory=Address)
    shipping_address: Address = field(default_factory=Address)
    currency: str = "EUR"
    items: List[OrderItem] = field(default_factory=list)
    modifiers: List[OrderModifier] = field(default_factory=list)
    payments: List[Payment] = field(default_factory=list)

    def is_cart(self) -> bool:
        return self.status == OrderStatus.CART

    def subtotal(self) -> int:
        return sum(item.total_cents for item in self.items)

    def grand_total(self) -> int:
        """Items subtotal plus every determined modifier amount."""
        return self.subtotal() + sum(m.amount_cents or 0 for m in self.modifiers)

    def total_paid(self, include_unsettled: bool = False) -> int:
        """Sum of captured payments, plus authorized ones when asked.

        Args:
            include_unsettled: Also count payments that are authorized but
                not yet captured.
        """
        settled = {PaymentStatus.CAPTURED}
        if include_unsettled:
            settled.add(PaymentStatus.AUTHORIZED)
        return sum(p.amount_cents for p in self.payments if p.status in settled)

    def total_outstanding(self, include_unsettled: bool = False) -> int:
        return self.grand_total() - self.total_paid(include_unsettled)

    def pending_modifiers(self) -> List[OrderModifier]:
        return [m for m in self.modifiers if m.required_before_place and m.is_pending]

    def can_pay(self, customer: Optional["CustomerPort"] = None) -> bool:
        """Return whether the given (possibly anonymous) customer may pay.

        An order linked to a customer is only payable by that customer.
        """
        if self.status not in PAYABLE_STATUSES:
            return False
        if self.member_id is not None and (customer is None or customer.id != self.member_id):
            return False
        return self.total_outstanding(include_unsettled=True) > 0 and not self.paid

    def link(self) -> str:
        return f"/api/orders/{self.id}/"


# ---- Ports (DIP) ----
class CustomerPort(Protocol):
    """Port describing the current shopper as seen by the processor."""

    id: int

    def add_to_group(self, name: str) -> None:
        """Add the customer to the named group. Adding twice is a no-op."""
        raise NotImplementedError()


class ServiceResponsePort(Protocol):
    payment: Payment
    message: Optional[str]
    target_url: Optional[str]

    @property
    def is_error(self) -> bool: ...

    @property
    def is_redirect(self) -> bool: ...


class PaymentServicePort(Protocol):
    """Port describing a gateway service bound to one payment."""

    def set_return_url(self, url: str) -> None: ...

    def set_cancel_url(self, url: str) -> None: ...

    def on_captured(self, callback: Callable[[Payment], None]) -> None: ...

    def initiate(self, data: dict) -> ServiceResponsePort:
        """Start the payment with the given gateway payload.

        Raises:
            PaymentGatewayException: When the gateway cannot be used.
        """
        raise NotImplementedError()


class PaymentGatewayPort(Protocol):
    """Port describing the payment gateway adapter."""

    def is_supported(self, gateway: str) -> bool:
        raise NotImplementedError()

    def get_service(self, payment: Payment, intent: str) -> PaymentServicePort:
        raise NotImplementedError()


class NotificationPort(Protocol):
    """Port describing order emails. Each method returns True when sent."""

    def send_receipt(self, order: Order) -> bool:
        raise NotImplementedError()

    def send_confirmation(self, order: Order) -> bool:
        raise NotImplementedError()

    def send_admin_notification(self, order: Order) -> bool:
        raise NotImplementedError()


class CheckoutContext(Protocol):
    """Request-scoped view of the shopper, their cart and their session."""

    customer: Optional[CustomerPort]
    client_ip: Optional[str]

    def current_cart_id(self) -> Optional[uuid.UUID]: ...

    def clear_cart(self) -> None: ...

    def add_session_order(self, order: Order) -> None: ...

    def install_locale(self, locale: str) -> None: ...


class OrderRepositoryPort(Protocol):
    """Port describing the writes the processor performs."""

    def save(self, order: Order) -> None: ...

    def save_item(self, order: Order, item: OrderItem) -> None: ...

    def save_modifier(self, order: Order, modifier: OrderModifier) -> None: ...

    def save_payment(self, order: Order, payment: Payment) -> None: ...


# ---- Configuration ----
@dataclass(frozen=True)
class ProcessorConfig:
    """Shop behaviour switches injected into the order processor."""

    send_confirmation: bool = True
    send_admin_notification: bool = False
    allow_zero_order_total: bool = False
    base_currency: str = "EUR"
    customer_group: str = "customers"


# ---- Hooks ----
class OrderHooks:
    """Registry of observer callbacks for order extension points.

    Callbacks are invoked synchronously, in registration order, with the
    order as their only positional argument.
    """

    def __init__(self):
        self._observers: dict[str, list[Callable[[Order], None]]] = defaultdict(list)

    def register(self, name: str, callback: Callable[[Order], None]) -> None:
        self._observers[name].append(callback)

    def fire(self, name: str, order: Order) -> None:
        for callback in self._observers.get(name, ()):
            callback(order)
