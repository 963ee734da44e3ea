"""
Request correlation.

Every request gets an id, taken from ``X-Request-ID`` when the caller sends a
usable one. The id is echoed back, bound into structlog's context for the
duration of the request, and stamped onto audit rows written meanwhile.
"""

import contextvars
import re
from uuid import uuid4

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

REQUEST_ID_HEADER = "X-Request-ID"

# Incoming ids end up in logs and the audit table
_ACCEPTABLE_ID = re.compile(r"^[A-Za-z0-9._:-]{1,100}$")

_current_request_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "parish_authz_request_id", default=None
)


def get_request_id() -> str | None:
    """Id of the request being served, or None outside a request."""
    return _current_request_id.get()


def _incoming_id(request: Request) -> str:
    candidate = request.headers.get(REQUEST_ID_HEADER, "")
    if _ACCEPTABLE_ID.match(candidate):
        return candidate
    return uuid4().hex


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Assign and propagate the request id."""

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = _incoming_id(request)
        request.state.request_id = request_id

        token = _current_request_id.set(request_id)
        with structlog.contextvars.bound_contextvars(request_id=request_id):
            try:
                response = await call_next(request)
            finally:
                _current_request_id.reset(token)

        response.headers[REQUEST_ID_HEADER] = request_id
        return response
