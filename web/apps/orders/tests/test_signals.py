"""Tests for the hook registry and its Django signal bridge."""
import pytest

from apps.orders.domain import ON_PAID, ON_PLACE_ORDER, Order, OrderHooks
from apps.orders.signals import order_paid, order_placed, signal_hooks


def test_hooks_run_in_registration_order():
    hooks = OrderHooks()
    seen = []
    hooks.register(ON_PAID, lambda order: seen.append("first"))
    hooks.register(ON_PAID, lambda order: seen.append("second"))
    hooks.fire(ON_PAID, Order())
    hooks.fire(ON_PLACE_ORDER, Order())
    assert seen == ["first", "second"]


def test_signal_hooks_forward_to_signals():
    received = []

    def receiver(sender, order, **kwargs):
        received.append(order)

    order_placed.connect(receiver)
    try:
        order = Order(reference="R100")
        signal_hooks().fire(ON_PLACE_ORDER, order)
    finally:
        order_placed.disconnect(receiver)

    assert received == [order]


@pytest.mark.django_db
def test_paid_signal_sent_once_per_order(client, create_cart):
    received = []

    def receiver(sender, order, **kwargs):
        received.append(order.reference)

    order_paid.connect(receiver)
    try:
        order = create_cart()
        client.post(
            f"/api/orders/{order['id']}/payments/",
            data={"gateway": "Sandbox", "data": {"number": "4242424242424242"}},
            content_type="application/json",
        )
        client.post(f"/api/orders/{order['id']}/place/")
    finally:
        order_paid.disconnect(receiver)

    assert received == ["R100"]
