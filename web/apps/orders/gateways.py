"""Payment gateway adapter.

Wraps the payment providers behind a uniform request/response contract.
``GatewayFactory`` knows which gateways are configured and, for each
payment, returns an ``AuthorizeService`` or a ``PurchaseService`` depending
on the gateway configuration. A service talks to a transport client (HTTP or
in-process), updates the payment status from the provider's answer and
returns a ``ServiceResponse``.

Provider answers are plain dicts with these keys:

- ``status``: one of ``captured``, ``authorized``, ``redirect``,
  ``pending``, ``declined``.
- ``reference``: provider-side identifier of the transaction.
- ``redirect_url``: where to send the shopper for offsite gateways.
- ``message``: human-readable provider message.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Mapping, Optional, Protocol

import httpx

from .domain import (
    GatewayConnectionError,
    InvalidPaymentStateError,
    Payment,
    PaymentGatewayException,
    PaymentStatus,
)

logger = logging.getLogger(__name__)


class CircuitOpenError(RuntimeError):
    """Raised by transport clients when their circuit breaker refuses a call."""


class GatewayClient(Protocol):
    """Transport used by payment services to reach a provider."""

    def purchase(self, payload: dict) -> dict: ...

    def authorize(self, payload: dict) -> dict: ...

    def fetch(self, reference: str) -> dict: ...


@dataclass(frozen=True)
class GatewayInfo:
    """Static configuration of one gateway.

    Attributes:
        name: Gateway identifier used by callers (e.g. ``Sandbox``).
        backend: Key of the transport client to use.
        use_authorize: Authorize only and capture later, instead of a
            direct purchase.
        offsite: The shopper is redirected to the provider's own page.
    """

    name: str
    backend: str
    use_authorize: bool = False
    offsite: bool = False

    @classmethod
    def from_setting(cls, name: str, conf: Mapping) -> "GatewayInfo":
        return cls(
            name=name,
            backend=conf.get("backend", "manual"),
            use_authorize=bool(conf.get("use_authorize", False)),
            offsite=bool(conf.get("offsite", False)),
        )


@dataclass
class ServiceResponse:
    """Outcome of a payment service call."""

    payment: Payment
    error: bool = False
    target_url: Optional[str] = None
    message: Optional[str] = None
    gateway_status: Optional[str] = None

    @property
    def is_error(self) -> bool:
        return self.error

    @property
    def is_redirect(self) -> bool:
        return self.target_url is not None


class PaymentService:
    """Base service bound to a single payment.

    Subclasses define which client call starts the payment and which
    pending status the payment takes while the shopper is offsite.
    """

    client_method = "purchase"
    pending_status = PaymentStatus.PENDING_PURCHASE

    def __init__(self, payment: Payment, client: GatewayClient, info: GatewayInfo):
        self.payment = payment
        self.client = client
        self.info = info
        self.return_url: Optional[str] = None
        self.cancel_url: Optional[str] = None
        self._capture_listeners: List[Callable[[Payment], None]] = []

    def set_return_url(self, url: str) -> None:
        self.return_url = url

    def set_cancel_url(self, url: str) -> None:
        self.cancel_url = url

    def on_captured(self, callback: Callable[[Payment], None]) -> None:
        """Register a callback fired when this service captures the payment."""
        self._capture_listeners.append(callback)

    def initiate(self, data: dict) -> ServiceResponse:
        """Start the payment.

        Args:
            data: Gateway payload; ``transactionId`` is also sent as the
                idempotency key.

        Returns:
            ServiceResponse: redirect response for offsite gateways, error
            response for declines, plain response otherwise.

        Raises:
            InvalidPaymentStateError: If the payment was already initiated.
            GatewayConnectionError: If the provider cannot be reached.
        """
        if self.payment.status != PaymentStatus.CREATED:
            raise InvalidPaymentStateError(
                f"Cannot initiate a payment with status {self.payment.status.value}."
            )
        payload = {
            **data,
            "amount_cents": self.payment.amount_cents,
            "currency": self.payment.currency,
            "gateway": self.info.name,
            "offsite": self.info.offsite,
            "return_url": self.return_url,
            "cancel_url": self.cancel_url,
        }
        result = self._call(getattr(self.client, self.client_method), payload)
        return self._apply(result)

    def complete(self, data: Optional[dict] = None) -> ServiceResponse:
        """Refresh a pending payment from the provider after the shopper returns.

        Payments that are already settled are returned unchanged, so repeated
        gateway callbacks do not hit the provider again.
        """
        if self.payment.status in (PaymentStatus.CAPTURED, PaymentStatus.AUTHORIZED):
            return ServiceResponse(payment=self.payment, gateway_status=self.payment.status.value)
        if not self.payment.reference:
            raise InvalidPaymentStateError("Payment has no gateway reference to complete.")
        result = self._call(self.client.fetch, self.payment.reference)
        return self._apply(result)

    def _call(self, method, arg) -> dict:
        try:
            return method(arg)
        except (httpx.HTTPError, CircuitOpenError) as exc:
            logger.warning(
                "gateway call failed",
                extra={"gateway": self.info.name, "payment_id": str(self.payment.id), "error": str(exc)},
            )
            raise GatewayConnectionError(f"Payment gateway {self.info.name} is unavailable: {exc}") from exc

    def _apply(self, result: dict) -> ServiceResponse:
        status = result.get("status")
        message = result.get("message")
        if result.get("reference"):
            self.payment.reference = str(result["reference"])
        if message:
            self.payment.message = message

        if status == "captured":
            self.payment.status = PaymentStatus.CAPTURED
            for listener in self._capture_listeners:
                listener(self.payment)
            return ServiceResponse(payment=self.payment, message=message, gateway_status=status)
        if status == "authorized":
            self.payment.status = PaymentStatus.AUTHORIZED
            return ServiceResponse(payment=self.payment, message=message, gateway_status=status)
        if status in ("redirect", "pending"):
            self.payment.status = self.pending_status
            return ServiceResponse(
                payment=self.payment,
                target_url=result.get("redirect_url") if status == "redirect" else None,
                message=message,
                gateway_status=status,
            )

        self.payment.status = PaymentStatus.FAILED
        return ServiceResponse(payment=self.payment, error=True, message=message, gateway_status=status)


class PurchaseService(PaymentService):
    """Charges the payment in one step."""


class AuthorizeService(PaymentService):
    """Reserves the funds; capture happens later, outside the checkout."""

    client_method = "authorize"
    pending_status = PaymentStatus.PENDING_AUTHORIZATION


class GatewayFactory:
    """Payment gateway adapter used by the order processor.

    Args:
        gateways: Mapping of gateway name to its configuration.
        clients: Mapping of backend key to transport client.
    """

    def __init__(self, gateways: Dict[str, GatewayInfo], clients: Dict[str, GatewayClient]):
        self.gateways = gateways
        self.clients = clients

    @classmethod
    def from_settings(cls, setting: Mapping[str, Mapping], clients: Dict[str, GatewayClient]) -> "GatewayFactory":
        return cls({name: GatewayInfo.from_setting(name, conf) for name, conf in setting.items()}, clients)

    def is_supported(self, gateway: str) -> bool:
        info = self.gateways.get(gateway)
        return info is not None and info.backend in self.clients

    def get_service(self, payment: Payment, intent: str = "payment") -> PaymentService:
        """Return the service that matches the payment's gateway configuration.

        Raises:
            PaymentGatewayException: If the gateway is not configured.
        """
        if not self.is_supported(payment.gateway):
            raise PaymentGatewayException(f"`{payment.gateway}` isn't a valid payment gateway.")
        info = self.gateways[payment.gateway]
        service_class = AuthorizeService if info.use_authorize else PurchaseService
        return service_class(payment, self.clients[info.backend], info)
