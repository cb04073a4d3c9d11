"""Logging filters for enriching log records with request context.

``RequestContextFilter`` copies the request id and client address set by
``RequestContextMiddleware`` onto every log record, so JSON log lines from
checkout (placements, payments, receipts) can be correlated per request.
"""

from logging import Filter, LogRecord

from .middleware import CLIENT_IP_CTX, REQUEST_ID_CTX


class RequestContextFilter(Filter):
    """Attach ``request_id`` and ``client_ip`` attributes to log records.

    Records logged outside a request get a hyphen ("-") placeholder so
    formatters can reference both fields unconditionally.
    """

    def filter(self, record: LogRecord) -> bool:
        record.request_id = REQUEST_ID_CTX.get()
        record.client_ip = CLIENT_IP_CTX.get()
        return True
