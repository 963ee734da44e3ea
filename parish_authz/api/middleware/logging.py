"""
Access log for the authorization API.

One line per request. Authentication and authorization refusals are logged
at warning level with an ``outcome`` field so that denied calls can be
filtered without parsing status codes.
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger(__name__)

QUIET_PATHS = frozenset({"/health"})

_OUTCOMES = {401: "unauthenticated", 403: "forbidden"}


def _outcome(status_code: int) -> str:
    if status_code in _OUTCOMES:
        return _OUTCOMES[status_code]
    if status_code >= 500:
        return "error"
    if status_code >= 400:
        return "rejected"
    return "ok"


class LoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        if request.url.path in QUIET_PATHS:
            return await call_next(request)

        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = round((time.perf_counter() - started) * 1000, 2)

        outcome = _outcome(response.status_code)
        level = logging.INFO if outcome in ("ok", "rejected") else logging.WARNING
        logger.log(
            level,
            "request_handled",
            extra={
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "outcome": outcome,
                "duration_ms": elapsed_ms,
                "client_ip": request.client.host if request.client else None,
            },
        )
        return response
