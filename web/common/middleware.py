"""Middleware that assigns request identifiers and resolves the client IP.

Every incoming HTTP request receives a request identifier, read from the
``X-Request-Id`` header when the client provides one and generated (UUIDv4)
otherwise. The client address is resolved from ``X-Forwarded-For`` when the
request comes through a trusted proxy, else from ``REMOTE_ADDR``; checkout
records it on the order when it is placed. Both values are stored on the
request object and in context variables so code downstream (HTTP clients,
log filters) can read them without passing them explicitly.

The response carries the same id in the ``X-Request-ID`` header.
"""

import contextvars
import os
import uuid

from django.conf import settings
from django.http import JsonResponse
from django.utils.deprecation import MiddlewareMixin

REQUEST_ID_CTX = contextvars.ContextVar("request_id", default="-")
CLIENT_IP_CTX = contextvars.ContextVar("client_ip", default="-")
MAX_API_BYTES = int(os.getenv("API_MAX_BYTES", str(1 * 1024 * 1024)))


def client_ip(request) -> str | None:
    """Return the originating client address for a Django request."""
    remote = request.META.get("REMOTE_ADDR")
    forwarded = request.META.get("HTTP_X_FORWARDED_FOR")
    if forwarded and remote in getattr(settings, "TRUSTED_PROXIES", ()):
        return forwarded.split(",")[0].strip()
    return remote


class RequestContextMiddleware(MiddlewareMixin):
    """Set ``request.request_id`` and ``request.client_ip`` for each request.

    Attributes:
        HEADER (str): Incoming header (``request.META`` casing) that may
            carry a client-provided id.
        RESPONSE_HEADER (str): Header returned on responses.
    """

    HEADER = "HTTP_X_REQUEST_ID"
    RESPONSE_HEADER = "X-Request-ID"

    def process_request(self, request):
        rid = request.META.get(self.HEADER)
        if not rid:
            rid = str(uuid.uuid4())
        request.request_id = rid
        REQUEST_ID_CTX.set(rid)

        ip = client_ip(request)
        request.client_ip = ip
        CLIENT_IP_CTX.set(ip or "-")

    def process_response(self, request, response):
        rid = getattr(request, "request_id", REQUEST_ID_CTX.get())
        response[self.RESPONSE_HEADER] = rid
        return response


class ApiSizeLimitMiddleware(MiddlewareMixin):
    """Reject API bodies larger than ``API_MAX_BYTES`` with HTTP 413."""

    def process_request(self, request):
        if request.path.startswith("/api/"):
            clen = request.META.get("CONTENT_LENGTH")
            if clen and clen.isdigit() and int(clen) > MAX_API_BYTES:
                return JsonResponse({"detail": "PAYLOAD_TOO_LARGE"}, status=413)
