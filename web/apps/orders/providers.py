"""Service provider helpers for wiring the order processor.

``get_gateway_factory`` builds the payment gateway adapter from
``settings.PAYMENT_GATEWAYS``. Gateways with the ``sandbox`` backend use
the HTTP client when ``settings.USE_HTTP_ADAPTERS`` is truthy and the fast
in-process fake otherwise (tests and local development). ``build_processor``
returns an ``OrderProcessor`` wired with Django-backed ports.
"""

from django.conf import settings

from .adapters import FakeGatewayClient, ManualGatewayClient
from .context import SessionCheckoutContext
from .domain import Order, ProcessorConfig
from .gateways import GatewayFactory
from .http_adapters import HttpGatewayClient
from .notifications import OrderEmailNotifier
from .processor import OrderProcessor
from .repository import OrderRepository
from .signals import signal_hooks

_fake_client = FakeGatewayClient()


def get_fake_client() -> FakeGatewayClient:
    """Return the shared in-process sandbox client used without HTTP adapters."""
    return _fake_client


def processor_config() -> ProcessorConfig:
    return ProcessorConfig(
        send_confirmation=getattr(settings, "SHOP_SEND_CONFIRMATION", True),
        send_admin_notification=getattr(settings, "SHOP_SEND_ADMIN_NOTIFICATION", False),
        allow_zero_order_total=getattr(settings, "SHOP_ALLOW_ZERO_ORDER_TOTAL", False),
        base_currency=getattr(settings, "SHOP_BASE_CURRENCY", "EUR"),
        customer_group=getattr(settings, "SHOP_CUSTOMER_GROUP", "customers"),
    )


def get_gateway_factory() -> GatewayFactory:
    if getattr(settings, "USE_HTTP_ADAPTERS", True):
        sandbox = HttpGatewayClient()
    else:
        sandbox = get_fake_client()
    clients = {"manual": ManualGatewayClient(), "sandbox": sandbox}
    return GatewayFactory.from_settings(getattr(settings, "PAYMENT_GATEWAYS", {}), clients)


def build_processor(order: Order | None, request=None, repository: OrderRepository | None = None) -> OrderProcessor:
    """Return an OrderProcessor for the order and (optional) HTTP request.

    Without a request (provider callbacks) the context has no session and
    no customer.
    """
    context = SessionCheckoutContext.from_request(request) if request is not None else SessionCheckoutContext()
    return OrderProcessor(
        order,
        gateways=get_gateway_factory(),
        notifier=OrderEmailNotifier(),
        repository=repository or OrderRepository(),
        context=context,
        config=processor_config(),
        hooks=signal_hooks(),
    )
