"""
Typed authorization errors.

Every failure the engine can produce is one of these. Storage exceptions are
translated into them at the repository boundary, and the HTTP layer maps them
to responses in one place (see ``register_exception_handlers``).

Denials (``Unauthenticated`` / ``Forbidden``) always render a generic message
so the response does not reveal which capability was missing. The detailed
reason is kept on the exception for server-side logging only.
"""

from typing import Any

import structlog
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

logger = structlog.get_logger()


class AuthzError(Exception):
    """Base class for all authorization engine errors."""

    status_code: int = status.HTTP_400_BAD_REQUEST
    error: str = "authz_error"

    def __init__(self, message: str = "", **context: Any):
        super().__init__(message or self.error)
        self.message = message or self.error
        self.context = context

    @property
    def public_message(self) -> str:
        """Message safe to return to the caller."""
        return self.message

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.error, "message": self.public_message}


class NotFound(AuthzError):
    """Referenced role, permission, assignment or principal does not exist."""

    status_code = status.HTTP_404_NOT_FOUND
    error = "not_found"


class Conflict(AuthzError):
    """Duplicate active assignment or override for the same key."""

    status_code = status.HTTP_409_CONFLICT
    error = "conflict"


class ScopeMismatch(AuthzError):
    """Role scope does not match the target principal's membership."""

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    error = "scope_mismatch"


class Expired(AuthzError):
    """An edge was requested with an expiry that has already passed."""

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    error = "expired"


class InvalidIdentifier(AuthzError):
    """A path or query parameter that should name a record is not a UUID."""

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    error = "invalid_identifier"


class InvalidRole(AuthzError):
    """Role definition violates the scope/organization invariant."""

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    error = "invalid_role"


class ProtectedRole(AuthzError):
    """System roles cannot be deleted or renamed."""

    status_code = status.HTTP_403_FORBIDDEN
    error = "protected_role"


class Unauthenticated(AuthzError):
    """No valid credential presented."""

    status_code = status.HTTP_401_UNAUTHORIZED
    error = "unauthenticated"

    @property
    def public_message(self) -> str:
        return "Authentication required"


class Forbidden(AuthzError):
    """Valid credential, but the capability is not held."""

    status_code = status.HTTP_403_FORBIDDEN
    error = "forbidden"

    @property
    def public_message(self) -> str:
        return "Permission denied"


def register_exception_handlers(app: FastAPI) -> None:
    """Map typed errors to JSON responses."""

    @app.exception_handler(AuthzError)
    async def authz_error_handler(request: Request, exc: AuthzError) -> JSONResponse:
        log = logger.info if exc.status_code < 500 else logger.error
        log(
            "authz_error",
            error=exc.error,
            reason=exc.message,
            path=request.url.path,
            method=request.method,
            **{k: str(v) for k, v in exc.context.items()},
        )

        headers = None
        if isinstance(exc, Unauthenticated):
            headers = {"WWW-Authenticate": "Bearer"}

        return JSONResponse(
            status_code=exc.status_code,
            content=exc.to_dict(),
            headers=headers,
        )
