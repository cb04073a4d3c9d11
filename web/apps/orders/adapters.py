"""In-process adapters for the checkout ports.

These adapters implement the gateway client, notification, checkout context
and repository ports without any network or database access:

- ``ManualGatewayClient`` backs the ``Manual`` gateway (bank transfer,
  cheque): it authorizes immediately and leaves capture to staff.
- ``FakeGatewayClient`` simulates a card provider, onsite or offsite, and
  can be told to decline. It is used when HTTP adapters are disabled.
- The in-memory context, repository and notifier are used by unit tests and
  local scripts where deterministic behavior is useful.
"""

import uuid
from typing import List, Optional

from .domain import CustomerPort, Order, OrderItem, OrderModifier, Payment

# calls and offsite transactions kept by FakeGatewayClient
MAX_TRACKED = 1000


class ManualGatewayClient:
    """Gateway client for offline payments.

    Every request is authorized straight away with a generated reference;
    the money is collected outside the shop.
    """

    def purchase(self, payload: dict) -> dict:
        return self.authorize(payload)

    def authorize(self, payload: dict) -> dict:
        return {
            "status": "authorized",
            "reference": f"manual_{uuid.uuid4().hex[:12]}",
            "message": "Awaiting manual payment",
        }

    def fetch(self, reference: str) -> dict:
        return {"status": "authorized", "reference": reference}


class FakeGatewayClient:
    """Configurable fake card provider.

    Onsite payloads settle immediately (``captured`` for purchases,
    ``authorized`` for authorizations). Offsite payloads return a redirect;
    ``fetch`` then reports the final state once ``approve`` has been
    called for the reference, as the shopper would on the provider's page.

    Only the latest ``MAX_TRACKED`` calls and offsite transactions are kept,
    since one client serves the whole process when HTTP adapters are off.
    """

    def __init__(self) -> None:
        self.should_succeed: bool = True
        self.failure_reason: str = "Card declined"
        self.calls: list[dict] = []
        self._pending: dict[str, str] = {}
        self._approved: set[str] = set()

    def configure(self, should_succeed: bool, failure_reason: str = "Card declined") -> None:
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason

    def purchase(self, payload: dict) -> dict:
        return self._start("purchase", payload, "captured")

    def authorize(self, payload: dict) -> dict:
        return self._start("authorize", payload, "authorized")

    def approve(self, reference: str) -> None:
        if reference in self._pending:
            self._approved.add(reference)

    def fetch(self, reference: str) -> dict:
        self._record({"method": "fetch", "reference": reference})
        if reference not in self._pending:
            return {"status": "declined", "reference": reference, "message": "Unknown transaction"}
        if reference in self._approved:
            return {"status": self._pending[reference], "reference": reference}
        return {"status": "pending", "reference": reference}

    def _start(self, method: str, payload: dict, settled: str) -> dict:
        self._record({"method": method, **payload})
        reference = f"fake_txn_{uuid.uuid4().hex[:12]}"
        if not self.should_succeed:
            return {"status": "declined", "reference": reference, "message": self.failure_reason}
        if payload.get("offsite"):
            self._pending[reference] = settled
            while len(self._pending) > MAX_TRACKED:
                oldest = next(iter(self._pending))
                del self._pending[oldest]
                self._approved.discard(oldest)
            return {
                "status": "redirect",
                "reference": reference,
                "redirect_url": f"https://sandbox.invalid/checkout/{reference}",
            }
        return {"status": settled, "reference": reference, "message": "Payment successful"}

    def _record(self, call: dict) -> None:
        self.calls.append(call)
        del self.calls[:-MAX_TRACKED]


class InMemoryCheckoutContext:
    """Checkout context backed by plain attributes."""

    def __init__(
        self,
        customer: Optional[CustomerPort] = None,
        cart_id: Optional[uuid.UUID] = None,
        client_ip: Optional[str] = None,
    ):
        self.customer = customer
        self.cart_id = cart_id
        self.client_ip = client_ip
        self.session_orders: List[uuid.UUID] = []
        self.locales: List[str] = []

    def current_cart_id(self) -> Optional[uuid.UUID]:
        return self.cart_id

    def clear_cart(self) -> None:
        self.cart_id = None

    def add_session_order(self, order: Order) -> None:
        self.session_orders.append(order.id)

    def install_locale(self, locale: str) -> None:
        self.locales.append(locale)


class InMemoryOrderRepository:
    """Repository that only counts writes, for assertions in tests."""

    def __init__(self):
        self.order_writes = 0
        self.item_writes: List[OrderItem] = []
        self.modifier_writes: List[OrderModifier] = []
        self.payment_writes: List[Payment] = []

    def save(self, order: Order) -> None:
        self.order_writes += 1

    def save_item(self, order: Order, item: OrderItem) -> None:
        self.item_writes.append(item)

    def save_modifier(self, order: Order, modifier: OrderModifier) -> None:
        self.modifier_writes.append(modifier)

    def save_payment(self, order: Order, payment: Payment) -> None:
        self.payment_writes.append(payment)


class RecordingNotifier:
    """Notifier that records what would have been sent."""

    def __init__(self):
        self.sent: list[tuple[str, uuid.UUID]] = []

    def _record(self, kind: str, order: Order) -> bool:
        self.sent.append((kind, order.id))
        return True

    def send_receipt(self, order: Order) -> bool:
        return self._record("receipt", order)

    def send_confirmation(self, order: Order) -> bool:
        return self._record("confirmation", order)

    def send_admin_notification(self, order: Order) -> bool:
        return self._record("admin", order)

    def kinds(self) -> list[str]:
        return [kind for kind, _ in self.sent]
