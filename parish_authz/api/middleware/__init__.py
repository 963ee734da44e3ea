"""HTTP middleware: request correlation and access logging."""

from parish_authz.api.middleware.logging import LoggingMiddleware
from parish_authz.api.middleware.request_id import REQUEST_ID_HEADER, RequestIdMiddleware, get_request_id

__all__ = [
    "LoggingMiddleware",
    "REQUEST_ID_HEADER",
    "RequestIdMiddleware",
    "get_request_id",
]
