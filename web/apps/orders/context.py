"""Request-scoped checkout context backed by the Django session.

The session keeps the id of the shopper's current cart and the ids of the
orders they placed during the session, so they can view them without an
account. The authenticated ``auth.User`` becomes the processor's customer.
"""

import uuid
from typing import Optional

from django.contrib.auth.models import Group
from django.utils import translation

from .domain import Order

CART_SESSION_KEY = "shop_cart_id"
ORDERS_SESSION_KEY = "shop_order_ids"


class UserCustomer:
    """Customer adapter around a Django user."""

    def __init__(self, user):
        self.user = user
        self.id = user.pk

    def add_to_group(self, name: str) -> None:
        group, _ = Group.objects.get_or_create(name=name)
        self.user.groups.add(group)


class SessionCheckoutContext:
    """Checkout context for one HTTP request.

    Args:
        session: The Django session, or None for server-to-server callbacks.
        user: The request user; anonymous users give no customer.
        client_ip: Address resolved by ``RequestContextMiddleware``.
    """

    def __init__(self, session=None, user=None, client_ip: Optional[str] = None):
        self.session = session
        self.customer = UserCustomer(user) if user is not None and user.is_authenticated else None
        self.client_ip = client_ip

    @classmethod
    def from_request(cls, request) -> "SessionCheckoutContext":
        return cls(
            session=getattr(request, "session", None),
            user=getattr(request, "user", None),
            client_ip=getattr(request, "client_ip", None),
        )

    def current_cart_id(self) -> Optional[uuid.UUID]:
        if self.session is None:
            return None
        value = self.session.get(CART_SESSION_KEY)
        return uuid.UUID(value) if value else None

    def set_cart(self, order: Order) -> None:
        if self.session is not None:
            self.session[CART_SESSION_KEY] = str(order.id)

    def clear_cart(self) -> None:
        if self.session is not None:
            self.session.pop(CART_SESSION_KEY, None)

    def add_session_order(self, order: Order) -> None:
        if self.session is None:
            return
        ids = self.session.get(ORDERS_SESSION_KEY, [])
        if str(order.id) not in ids:
            self.session[ORDERS_SESSION_KEY] = ids + [str(order.id)]

    def install_locale(self, locale: str) -> None:
        translation.activate(locale)
