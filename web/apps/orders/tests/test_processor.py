"""Unit tests for the OrderProcessor placement and payment flow.

The processor is driven with the in-memory ports from ``apps.orders.adapters``
and a real ``GatewayFactory`` over in-process gateway clients, so every
outcome (onsite capture, authorization, offsite redirect, decline, transport
failure) is deterministic.
"""

from datetime import datetime, timedelta, timezone

import httpx
import pytest

from apps.orders.adapters import (
    FakeGatewayClient,
    InMemoryCheckoutContext,
    InMemoryOrderRepository,
    ManualGatewayClient,
    RecordingNotifier,
)
from apps.orders.domain import (
    ON_PAID,
    ON_PAYMENT,
    ON_PLACE_ORDER,
    Customer,
    Order,
    OrderHooks,
    OrderItem,
    OrderModifier,
    OrderStatus,
    Payment,
    PaymentStatus,
    ProcessorConfig,
)
from apps.orders.gateways import GatewayFactory, GatewayInfo
from apps.orders.processor import INTENT_PAYMENT, UNSPECIFIED_PAYMENT_ERROR, OrderProcessor

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

GATEWAYS = {
    "Manual": GatewayInfo("Manual", "manual", use_authorize=True),
    "Sandbox": GatewayInfo("Sandbox", "sandbox"),
    "SandboxOffsite": GatewayInfo("SandboxOffsite", "sandbox", offsite=True),
    "SandboxAuthorize": GatewayInfo("SandboxAuthorize", "sandbox", use_authorize=True),
}


class UnreachableClient:
    """Sandbox client whose provider is down."""

    def purchase(self, payload):
        raise httpx.ConnectError("connection refused")

    authorize = purchase

    def fetch(self, reference):
        raise httpx.ConnectError("connection refused")


def make_order(**kwargs) -> Order:
    defaults = dict(
        reference="R100",
        email="jo@example.com",
        first_name="Jo",
        surname="Bloggs",
        items=[OrderItem("SKU1", 1, unit_price_cents=5000)],
    )
    defaults.update(kwargs)
    return Order(**defaults)


@pytest.fixture
def make_processor():
    """Build a processor with fresh in-memory collaborators."""

    def _make(order, *, client=None, config=ProcessorConfig(), customer=None, cart_id=None, hooks=None):
        gateways = GatewayFactory(
            GATEWAYS,
            {"manual": ManualGatewayClient(), "sandbox": client or FakeGatewayClient()},
        )
        context = InMemoryCheckoutContext(
            customer=customer,
            cart_id=cart_id,
            client_ip="203.0.113.9",
        )
        return OrderProcessor(
            order,
            gateways=gateways,
            notifier=RecordingNotifier(),
            repository=InMemoryOrderRepository(),
            context=context,
            config=config,
            hooks=hooks,
            now=lambda: NOW,
        )

    return _make


def recorded_hooks():
    fired = []
    hooks = OrderHooks()
    for name in (ON_PLACE_ORDER, ON_PAYMENT, ON_PAID):
        hooks.register(name, lambda order, name=name: fired.append(name))
    return hooks, fired


# ---- can_place ----

def test_can_place_without_order(make_processor):
    processor = make_processor(None)
    assert processor.can_place(None) is False
    assert processor.error == "No order to process."


@pytest.mark.parametrize("status", [s for s in OrderStatus if s != OrderStatus.CART])
def test_can_place_rejects_orders_that_are_not_carts(make_processor, status):
    order = make_order(status=status)
    processor = make_processor(order)
    assert processor.can_place(order) is False
    assert processor.error == "Order is not a cart."


@pytest.mark.parametrize("status", list(OrderStatus))
def test_can_place_rejects_empty_orders_in_any_status(make_processor, status):
    order = make_order(status=status, items=[])
    assert make_processor(order).can_place(order) is False


def test_can_place_empty_cart_reports_no_items(make_processor):
    order = make_order(items=[])
    processor = make_processor(order)
    processor.can_place(order)
    assert processor.error == "Order has no items."


def test_can_place_blocks_undetermined_shipping(make_processor):
    order = make_order(
        modifiers=[OrderModifier("Shipping", amount_cents=None, required=True, required_before_place=True)]
    )
    processor = make_processor(order)
    assert processor.can_place(order) is False
    assert processor.error == "Order has pending charges: Shipping."


def test_can_place_ignores_optional_pending_modifiers(make_processor):
    order = make_order(modifiers=[OrderModifier("Gift wrap", amount_cents=None)])
    assert make_processor(order).can_place(order) is True


def test_can_place_does_not_change_the_order(make_processor):
    order = make_order()
    processor = make_processor(order)
    assert processor.can_place(order) is True
    assert order.status == OrderStatus.CART
    assert order.placed is None
    assert processor.repository.order_writes == 0


# ---- place_order ----

def test_place_order_with_outstanding_balance(make_processor):
    order = make_order(items=[OrderItem("SKU1", 1, unit_price_cents=50)], locale="de")
    processor = make_processor(order, cart_id=order.id)

    assert processor.place_order() is True
    assert order.status == OrderStatus.UNPAID
    assert order.placed == NOW
    assert order.ip_address == "203.0.113.9"
    assert processor.context.current_cart_id() is None
    assert processor.context.locales == ["de"]
    assert processor.context.session_orders == [order.id]
    assert processor.repository.order_writes == 1


def test_place_order_fully_captured_becomes_paid(make_processor):
    order = make_order(payments=[Payment("Sandbox", 5000, "EUR", status=PaymentStatus.CAPTURED)])
    processor = make_processor(order)
    assert processor.place_order() is True
    assert order.status == OrderStatus.PAID


def test_place_order_authorized_payment_still_unpaid(make_processor):
    order = make_order(payments=[Payment("Manual", 5000, "EUR", status=PaymentStatus.AUTHORIZED)])
    processor = make_processor(order)
    processor.place_order()
    assert order.status == OrderStatus.UNPAID


def test_place_order_keeps_other_session_cart(make_processor):
    other_cart = make_order().id
    order = make_order()
    processor = make_processor(order, cart_id=other_cart)
    processor.place_order()
    assert processor.context.current_cart_id() == other_cart


def test_place_order_without_order(make_processor):
    processor = make_processor(None)
    assert processor.place_order() is False
    assert processor.error == "A new order has not yet been started."


def test_place_order_twice_is_rejected_and_keeps_timestamp(make_processor):
    order = make_order()
    processor = make_processor(order)
    assert processor.place_order() is True

    assert processor.place_order() is False
    assert processor.error == "Order is not a cart."
    assert order.placed == NOW


def test_place_order_never_overwrites_placed(make_processor):
    order = make_order()
    processor = make_processor(order)
    processor.place_order()

    order.status = OrderStatus.CART
    processor.now = lambda: NOW + timedelta(hours=1)
    assert processor.place_order() is True
    assert order.placed == NOW


def test_place_order_freezes_items_and_modifiers(make_processor):
    order = make_order(
        items=[OrderItem("SKU1", 3, unit_price_cents=1000)],
        modifiers=[
            OrderModifier("Shipping", amount_cents=450, required=True, required_before_place=True),
            OrderModifier("Gift wrap", amount_cents=None),
        ],
    )
    processor = make_processor(order)
    processor.place_order()

    assert order.items[0].calculated_total_cents == 3000
    assert order.items[0].placed is True
    assert [m.amount_cents for m in order.modifiers] == [450, 0]
    assert all(m.placed for m in order.modifiers)
    assert processor.repository.item_writes == order.items
    assert processor.repository.modifier_writes == order.modifiers


def test_place_order_links_customer(make_processor):
    customer = Customer(id=7, email="jo@example.com")
    order = make_order()
    processor = make_processor(order, customer=customer)
    processor.place_order()
    assert order.member_id == 7
    assert customer.groups == {"customers"}


def test_place_order_skips_group_when_not_configured(make_processor):
    customer = Customer(id=7)
    order = make_order()
    processor = make_processor(order, customer=customer, config=ProcessorConfig(customer_group=""))
    processor.place_order()
    assert order.member_id == 7
    assert customer.groups == set()


def test_place_order_sends_confirmation_by_default(make_processor):
    order = make_order()
    processor = make_processor(order)
    processor.place_order()
    assert processor.notifier.kinds() == ["confirmation"]


def test_place_order_notifications_follow_config(make_processor):
    order = make_order()
    config = ProcessorConfig(send_confirmation=False, send_admin_notification=True)
    processor = make_processor(order, config=config)
    processor.place_order()
    assert processor.notifier.kinds() == ["admin"]


def test_place_order_skips_confirmation_after_receipt(make_processor):
    order = make_order(receipt_sent=NOW)
    processor = make_processor(order, config=ProcessorConfig(send_admin_notification=True))
    processor.place_order()
    assert processor.notifier.kinds() == ["admin"]


def test_place_order_fires_hook_once(make_processor):
    hooks, fired = recorded_hooks()
    order = make_order()
    processor = make_processor(order, hooks=hooks)
    processor.place_order()
    processor.place_order()
    assert fired == [ON_PLACE_ORDER]


# ---- payments ----

def test_transaction_id_counts_prior_payments(make_processor):
    order = make_order()
    processor = make_processor(order)

    processor.create_payment("Sandbox")
    assert processor.transaction_id() == "R100"
    processor.create_payment("Sandbox")
    assert processor.transaction_id() == "R100-1"


def test_create_payment_for_outstanding_balance(make_processor):
    order = make_order(payments=[Payment("Manual", 2000, "GBP", status=PaymentStatus.AUTHORIZED)])
    processor = make_processor(order, config=ProcessorConfig(base_currency="GBP"))

    payment = processor.create_payment("Sandbox")
    assert payment.amount_cents == 3000
    assert payment.currency == "GBP"
    assert payment.status == PaymentStatus.CREATED
    assert order.payments[-1] is payment
    assert processor.repository.payment_writes == [payment]


def test_create_payment_rejects_paid_orders(make_processor):
    order = make_order(status=OrderStatus.PAID, paid=NOW)
    processor = make_processor(order)
    assert processor.create_payment("Sandbox") is None
    assert processor.error == "Order can't be paid for."


def test_create_payment_rejects_other_customers(make_processor):
    order = make_order(member_id=5)
    processor = make_processor(order, customer=Customer(id=6))
    assert processor.create_payment("Sandbox") is None
    assert processor.error == "Order can't be paid for."


@pytest.mark.parametrize("gateway", ["Sandbox", "Manual"])
def test_make_payment_rejects_cart_with_undetermined_shipping(make_processor, gateway):
    hooks, fired = recorded_hooks()
    order = make_order(
        modifiers=[OrderModifier("Shipping", amount_cents=None, required=True, required_before_place=True)]
    )
    processor = make_processor(order, hooks=hooks)

    assert processor.make_payment(gateway) is None
    assert processor.error == "Order has pending charges: Shipping."
    assert order.payments == []
    assert processor.repository.payment_writes == []
    assert order.status == OrderStatus.CART
    assert order.placed is None and order.paid is None
    assert processor.notifier.sent == []
    assert fired == []


def test_create_payment_on_placed_order_skips_placement_checks(make_processor):
    order = make_order(
        status=OrderStatus.UNPAID,
        placed=NOW,
        modifiers=[OrderModifier("Gift wrap", amount_cents=None, required_before_place=True)],
    )
    processor = make_processor(order)
    assert processor.create_payment("Sandbox").amount_cents == 5000


def test_make_payment_unsupported_gateway(make_processor):
    order = make_order()
    processor = make_processor(order)

    assert processor.make_payment("Bogus") is None
    assert processor.error == "`Bogus` isn't a valid payment gateway."
    assert order.payments == []
    assert processor.repository.payment_writes == []


def test_make_payment_authorized_onsite_places_order(make_processor):
    order = make_order()
    processor = make_processor(order)

    response = processor.make_payment("Manual")

    assert response is not None and not response.is_error and not response.is_redirect
    assert response.payment.status == PaymentStatus.AUTHORIZED
    assert order.status == OrderStatus.UNPAID
    assert order.placed == NOW
    assert order.paid is None
    assert processor.notifier.kinds() == ["confirmation"]


def test_make_payment_captured_onsite_pays_order(make_processor):
    hooks, fired = recorded_hooks()
    order = make_order()
    processor = make_processor(order, hooks=hooks)

    response = processor.make_payment("Sandbox", {"number": "4242424242424242"})

    assert response.payment.status == PaymentStatus.CAPTURED
    assert order.status == OrderStatus.PAID
    assert order.placed == NOW
    assert order.paid == NOW
    assert order.receipt_sent == NOW
    assert order.items[0].paid_for is True
    assert processor.notifier.kinds() == ["confirmation", "receipt"]
    assert fired == [ON_PAYMENT, ON_PLACE_ORDER, ON_PAID]
    assert processor.repository.payment_writes[-1].status == PaymentStatus.CAPTURED


def test_make_payment_authorize_gateway_places_order(make_processor):
    order = make_order()
    processor = make_processor(order)
    response = processor.make_payment("SandboxAuthorize")
    assert response.payment.status == PaymentStatus.AUTHORIZED
    assert order.status == OrderStatus.UNPAID
    assert processor.gateways.clients["sandbox"].calls[0]["method"] == "authorize"


def test_make_payment_offsite_waits_for_completion(make_processor):
    order = make_order()
    processor = make_processor(order)

    response = processor.make_payment("SandboxOffsite", success_url="https://shop.test/thanks")

    assert response.is_redirect
    assert response.target_url.startswith("https://sandbox.invalid/checkout/")
    assert response.payment.status == PaymentStatus.PENDING_PURCHASE
    assert order.status == OrderStatus.CART
    assert order.placed is None
    assert processor.gateways.clients["sandbox"].calls[0]["return_url"] == "https://shop.test/thanks"


def test_make_payment_offsite_return_url_defaults_to_order_link(make_processor):
    order = make_order()
    processor = make_processor(order)
    processor.make_payment("SandboxOffsite", cancel_url="https://shop.test/cart")
    call = processor.gateways.clients["sandbox"].calls[0]
    assert call["return_url"] == order.link()
    assert call["cancel_url"] == "https://shop.test/cart"


def test_offsite_completion_pays_order_with_single_receipt(make_processor):
    order = make_order()
    processor = make_processor(order)
    client = processor.gateways.clients["sandbox"]
    payment = processor.make_payment("SandboxOffsite").payment

    client.approve(payment.reference)
    response = processor.gateways.get_service(payment, INTENT_PAYMENT).complete({})
    assert response.payment.status == PaymentStatus.CAPTURED

    processor.complete_payment()
    processor.complete_payment()

    assert order.status == OrderStatus.PAID
    assert order.placed == NOW
    assert order.paid == NOW
    assert processor.notifier.kinds().count("receipt") == 1


def test_make_payment_decline_records_provider_message(make_processor):
    client = FakeGatewayClient()
    client.configure(should_succeed=False, failure_reason="Insufficient funds")
    order = make_order()
    processor = make_processor(order, client=client)

    response = processor.make_payment("Sandbox")

    assert response.is_error
    assert processor.error == "Insufficient funds"
    assert response.payment.status == PaymentStatus.FAILED
    assert order.status == OrderStatus.CART
    assert processor.notifier.sent == []


def test_make_payment_decline_without_message(make_processor):
    client = FakeGatewayClient()
    client.configure(should_succeed=False, failure_reason="")
    processor = make_processor(make_order(), client=client)
    processor.make_payment("Sandbox")
    assert processor.error == UNSPECIFIED_PAYMENT_ERROR


def test_make_payment_gateway_unavailable(make_processor):
    order = make_order()
    processor = make_processor(order, client=UnreachableClient())

    assert processor.make_payment("Sandbox") is None
    assert "unavailable" in processor.error
    assert order.payments[0].status == PaymentStatus.FAILED
    assert processor.repository.payment_writes[-1].status == PaymentStatus.FAILED
    assert order.status == OrderStatus.CART


def test_gateway_data_prefers_order_fields(make_processor):
    order = make_order()
    processor = make_processor(order)

    data = processor.gateway_data({"transactionId": "X-1", "email": "spoof@example.com", "number": "4242"})

    assert data["transactionId"] == "R100"
    assert data["email"] == "jo@example.com"
    assert data["firstName"] == "Jo"
    assert data["number"] == "4242"


def test_make_payment_sends_order_fields_to_gateway(make_processor):
    order = make_order()
    processor = make_processor(order)
    processor.make_payment("Sandbox", {"email": "spoof@example.com"})
    call = processor.gateways.clients["sandbox"].calls[0]
    assert call["email"] == "jo@example.com"
    assert call["transactionId"] == "R100"
    assert call["amount_cents"] == 5000


# ---- complete_payment ----

def test_complete_payment_without_order(make_processor):
    processor = make_processor(None)
    processor.complete_payment()
    assert processor.error == "A new order has not yet been started."
    assert processor.notifier.sent == []


def test_complete_payment_twice_pays_once(make_processor):
    hooks, fired = recorded_hooks()
    order = make_order(payments=[Payment("Sandbox", 5000, "EUR", status=PaymentStatus.CAPTURED)])
    processor = make_processor(order, hooks=hooks)

    processor.complete_payment()
    processor.now = lambda: NOW + timedelta(minutes=5)
    processor.complete_payment()

    assert order.paid == NOW
    assert fired.count(ON_PAID) == 1
    assert processor.notifier.kinds().count("receipt") == 1


def test_complete_payment_partial_capture_leaves_unpaid(make_processor):
    order = make_order(payments=[Payment("Sandbox", 2000, "EUR", status=PaymentStatus.CAPTURED)])
    processor = make_processor(order)
    processor.complete_payment()
    assert order.status == OrderStatus.UNPAID
    assert order.paid is None


def test_complete_payment_on_placed_order_installs_locale(make_processor):
    order = make_order(
        status=OrderStatus.UNPAID,
        placed=NOW,
        locale="fr",
        payments=[Payment("Sandbox", 5000, "EUR", status=PaymentStatus.CAPTURED)],
    )
    processor = make_processor(order)
    processor.complete_payment()
    assert processor.context.locales == ["fr"]
    assert order.status == OrderStatus.PAID


def test_complete_payment_zero_total_not_allowed(make_processor):
    hooks, fired = recorded_hooks()
    order = make_order(items=[OrderItem("FREEBIE", 1, unit_price_cents=0)])
    processor = make_processor(order, hooks=hooks)

    processor.complete_payment()

    assert order.paid is None
    assert ON_PAID not in fired


def test_complete_payment_zero_total_allowed(make_processor):
    order = make_order(items=[OrderItem("FREEBIE", 1, unit_price_cents=0)])
    processor = make_processor(order, config=ProcessorConfig(allow_zero_order_total=True))
    processor.complete_payment()
    assert order.status == OrderStatus.PAID
    assert order.paid == NOW


def test_complete_payment_receipt_not_stamped_when_not_sent(make_processor):
    class SilentNotifier(RecordingNotifier):
        def send_receipt(self, order):
            return False

    order = make_order(payments=[Payment("Sandbox", 5000, "EUR", status=PaymentStatus.CAPTURED)])
    processor = make_processor(order)
    processor.notifier = SilentNotifier()
    processor.complete_payment()
    assert order.paid == NOW
    assert order.receipt_sent is None


# ---- authorize_payment ----

def test_authorize_payment_places_cart(make_processor):
    order = make_order(payments=[Payment("Sandbox", 5000, "EUR", status=PaymentStatus.AUTHORIZED)])
    processor = make_processor(order)
    assert processor.authorize_payment() is True
    assert order.status == OrderStatus.UNPAID


def test_authorize_payment_on_placed_order(make_processor):
    order = make_order(status=OrderStatus.UNPAID, placed=NOW)
    processor = make_processor(order)
    assert processor.authorize_payment() is False
    assert processor.error == "Order is not a cart."
