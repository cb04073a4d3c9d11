"""HTTP gateway client with retries, circuit breaker, and context headers.

This module implements the transport used by the payment services to talk
to the payment provider over HTTP with ``httpx``. It adds:

- Request correlation: propagates ``X-Request-ID`` from the ContextVar set by
    the request context middleware.
- Circuit breaker for the provider to avoid hammering an unhealthy
    dependency, with HALF_OPEN probing after a timeout.
- Simple retry policy with exponential backoff for transport errors and 5xx.
- Idempotency: purchase and authorize calls send the payment's transaction
    id as ``Idempotency-Key`` so a retried request never charges twice.
"""

import os
import sys
import threading
import time
from typing import Optional

import httpx
from django.conf import settings

from common.middleware import REQUEST_ID_CTX

from .gateways import CircuitOpenError


def _is_test_mode() -> bool:
    return (
        "pytest" in sys.modules
        or os.environ.get("PYTEST_CURRENT_TEST") is not None
        or os.environ.get("PYTEST_RUNNING") == "1"
    )


# ---------------- Circuit Breaker ---------------- #

class CircuitBreaker:
    """Minimal circuit breaker with CLOSED/OPEN/HALF_OPEN states.

    Transitions:
    - CLOSED → OPEN when failures reach ``fail_threshold``.
    - OPEN → HALF_OPEN after ``reset_timeout`` seconds.
    - HALF_OPEN → CLOSED on a successful probe; stays HALF_OPEN while a
      single probe is in flight; transitions back to OPEN on failure.

    This implementation is thread-safe via an internal lock.
    """

    def __init__(self, name: str, fail_threshold: int, reset_timeout: float):
        self.name = name
        self.fail_threshold = fail_threshold
        self.reset_timeout = reset_timeout
        self._lock = threading.RLock()
        self._failures = 0
        self._state = "CLOSED"  # CLOSED | OPEN | HALF_OPEN
        self._opened_at = 0.0
        self._half_open_probe_in_flight = False

    @property
    def state(self) -> str:
        """Current breaker state with time-based transition handling."""
        with self._lock:
            if self._state == "OPEN" and (time.monotonic() - self._opened_at) >= self.reset_timeout:
                self._state = "HALF_OPEN"
                self._half_open_probe_in_flight = False
            return self._state

    def before_call(self) -> str:
        """Check and update state before a protected call.

        Returns:
            str: The state at call time.

        Raises:
            CircuitOpenError: If the circuit is OPEN or a HALF_OPEN probe is busy.
        """
        with self._lock:
            st = self.state
            if st == "OPEN":
                raise CircuitOpenError("CIRCUIT_OPEN")
            if st == "HALF_OPEN":
                if self._half_open_probe_in_flight:
                    raise CircuitOpenError("CIRCUIT_HALF_OPEN_BUSY")
                self._half_open_probe_in_flight = True
            return st

    def on_success(self):
        with self._lock:
            self._failures = 0
            self._state = "CLOSED"
            self._half_open_probe_in_flight = False

    def on_failure(self):
        with self._lock:
            self._failures += 1
            if self._failures >= self.fail_threshold and self._state != "OPEN":
                self._state = "OPEN"
                self._opened_at = time.monotonic()
                self._half_open_probe_in_flight = False

    def on_finish(self):
        with self._lock:
            if self._state == "HALF_OPEN":
                self._half_open_probe_in_flight = False


provider_cb = CircuitBreaker(
    "payments",
    getattr(settings, "HTTP_CIRCUIT_FAIL_THRESHOLD", 5),
    getattr(settings, "HTTP_CIRCUIT_RESET_TIMEOUT", 30.0),
)


# ---------------- Helpers ---------------- #

def _request_headers(extra: Optional[dict] = None) -> dict:
    """Build base headers including X-Request-ID and any extras."""
    headers: dict[str, str] = {}
    rid = REQUEST_ID_CTX.get()
    if rid and rid != "-":
        headers["X-Request-ID"] = rid
    if extra:
        headers.update(extra)
    return headers


def _retry_policy():
    """Return retry configuration as (max_retries, backoff_base_seconds)."""
    return (
        getattr(settings, "HTTP_RETRY_MAX", 3),
        getattr(settings, "HTTP_RETRY_BACKOFF_BASE", 0.15),
    )


def _should_retry(resp: Optional[httpx.Response], exc: Optional[Exception]) -> bool:
    """Retry only on transport exceptions or HTTP 5xx."""
    if exc is not None:
        return True
    if resp is not None and 500 <= resp.status_code < 600:
        return True
    return False


def _declined(resp: httpx.Response) -> dict:
    try:
        body = resp.json()
    except ValueError:
        body = {}
    detail = body.get("detail")
    return {
        "status": "declined",
        "reference": body.get("reference"),
        "message": body.get("message") or (detail if isinstance(detail, str) else None),
    }


# ---------------- Gateway client ---------------- #

class HttpGatewayClient:
    """HTTP client for the payment provider with retry and circuit breaker.

    Business mappings for every call:
    - 200 → the provider's JSON answer
    - 402 or 409 → a ``declined`` answer; not counted as circuit failures
    - 404 on ``fetch`` → a ``declined`` answer for an unknown reference
    """

    def __init__(self, base_url: str | None = None, timeout: float | None = None):
        self.base_url = base_url or settings.PAYMENTS_BASE_URL
        self.timeout = timeout or settings.HTTP_TIMEOUT_SECS

    def purchase(self, payload: dict) -> dict:
        return self._send("POST", "/purchase", payload, idem_key=payload.get("transactionId"))

    def authorize(self, payload: dict) -> dict:
        return self._send("POST", "/authorize", payload, idem_key=payload.get("transactionId"))

    def fetch(self, reference: str) -> dict:
        return self._send("GET", f"/transactions/{reference}")

    def _send(self, method: str, path: str, payload: dict | None = None, idem_key: str | None = None) -> dict:
        """Send one request, retrying transport errors and 5xx.

        Raises:
            httpx.RequestError: For network/transport errors after retries.
            httpx.HTTPStatusError: For non-retriable non-2xx responses.
            CircuitOpenError: When the breaker refuses the call.
        """
        max_retries, backoff = _retry_policy()
        if _is_test_mode():
            if max_retries < 1:
                max_retries = 1
            backoff = 0.0
        tries = 0

        extras = {}
        if idem_key:
            extras["Idempotency-Key"] = idem_key
        state = provider_cb.before_call()
        extras["X-Circuit-State"] = state
        extras["X-Retry-Count"] = "0"
        headers = _request_headers(extras)

        try:
            with httpx.Client(timeout=self.timeout) as client:
                while True:
                    resp = None
                    exc = None
                    try:
                        resp = client.request(method, f"{self.base_url}{path}", json=payload, headers=headers)
                        if resp.status_code == 200:
                            provider_cb.on_success()
                            return resp.json()
                        if resp.status_code in (402, 409) or (method == "GET" and resp.status_code == 404):
                            provider_cb.on_success()  # business outcome, not a circuit failure
                            return _declined(resp)
                        if not _should_retry(resp, None):
                            resp.raise_for_status()
                    except httpx.RequestError as e:
                        exc = e

                    tries += 1
                    headers["X-Retry-Count"] = str(tries)

                    if tries >= max_retries or not _should_retry(resp, exc):
                        provider_cb.on_failure()
                        if exc:
                            raise exc
                        resp.raise_for_status()

                    sleep_s = backoff * (2 ** (tries - 1))
                    cap = getattr(settings, "HTTP_RETRY_MAX_SLEEP", 0.5)
                    if not _is_test_mode():
                        time.sleep(min(sleep_s, cap))
        finally:
            provider_cb.on_finish()
