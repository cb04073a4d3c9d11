"""Django signals for order extension points.

Other apps connect receivers to these signals to react when an order is
placed, receives a payment, or becomes fully paid. Receivers get the domain
``Order`` as the ``order`` keyword argument.
"""

from django.dispatch import Signal

from .domain import ON_PAID, ON_PAYMENT, ON_PLACE_ORDER, OrderHooks

order_placed = Signal()
order_payment = Signal()
order_paid = Signal()

_SIGNALS = {
    ON_PLACE_ORDER: order_placed,
    ON_PAYMENT: order_payment,
    ON_PAID: order_paid,
}


def signal_hooks() -> OrderHooks:
    """Return a hook registry that forwards every hook to its Django signal."""
    hooks = OrderHooks()
    for name, signal in _SIGNALS.items():
        hooks.register(name, lambda order, signal=signal: signal.send(sender=OrderHooks, order=order))
    return hooks
