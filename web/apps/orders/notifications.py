"""Order emails sent through Django's mail framework.

``OrderEmailNotifier`` implements the notification port. Sending is
fire-and-forget from the processor's point of view: delivery errors are
logged and reported as ``False`` so that placement and payment completion
carry on.
"""

import logging
import smtplib

from django.conf import settings
from django.core.mail import send_mail

from .domain import Order

logger = logging.getLogger(__name__)


def _money(cents: int, currency: str) -> str:
    return f"{cents / 100:.2f} {currency}"


def _summary(order: Order) -> str:
    lines = [
        f"{item.quantity} x {item.title or item.sku}: {_money(item.total_cents, order.currency)}"
        for item in order.items
    ]
    lines += [
        f"{modifier.name}: {_money(modifier.amount_cents or 0, order.currency)}"
        for modifier in order.modifiers
    ]
    lines.append(f"Total: {_money(order.grand_total(), order.currency)}")
    return "\n".join(lines)


class OrderEmailNotifier:
    """Send receipts, confirmations and admin notifications by email."""

    def __init__(self, from_email: str | None = None, admin_email: str | None = None):
        self.from_email = from_email or getattr(settings, "DEFAULT_FROM_EMAIL", None)
        self.admin_email = admin_email or getattr(settings, "SHOP_ADMIN_EMAIL", "")

    def _send(self, kind: str, subject: str, body: str, recipient: str, order: Order) -> bool:
        if not recipient:
            logger.info("email skipped, no recipient", extra={"kind": kind, "order_id": str(order.id)})
            return False
        try:
            send_mail(subject, body, self.from_email, [recipient])
        except (smtplib.SMTPException, OSError):
            logger.exception("email delivery failed", extra={"kind": kind, "order_id": str(order.id)})
            return False
        logger.info("email sent", extra={"kind": kind, "order_id": str(order.id)})
        return True

    def send_receipt(self, order: Order) -> bool:
        subject = f"Order {order.reference} receipt"
        body = f"Thank you for your payment.\n\n{_summary(order)}\n"
        return self._send("receipt", subject, body, order.email, order)

    def send_confirmation(self, order: Order) -> bool:
        subject = f"Order {order.reference} confirmation"
        body = f"We have received your order.\n\n{_summary(order)}\n"
        return self._send("confirmation", subject, body, order.email, order)

    def send_admin_notification(self, order: Order) -> bool:
        subject = f"New order {order.reference}"
        body = (
            f"Order {order.reference} was placed by {order.first_name} {order.surname} "
            f"<{order.email}> with status {order.status.value}.\n\n{_summary(order)}\n"
        )
        return self._send("admin", subject, body, self.admin_email, order)
