"""
FastAPI dependencies for authorization.

Usage:
    from parish_authz.core.auth import CurrentPrincipal, Gate, StrictGate, require_capability

    @router.get("/me")
    async def handler(principal: CurrentPrincipal):
        ...

    @router.get("/families", dependencies=[Depends(require_capability("families.view"))])
    async def list_families():
        ...

    @router.post("/users/{user_id}/roles")
    async def assign(
        user_id: UUID,
        principal: AuthenticatedPrincipal = Depends(require_capability("roles.assign", strict=True)),
    ):
        ...
"""

from typing import Annotated, Callable
from uuid import UUID

from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.ext.asyncio import AsyncSession

from parish_authz.api.dependencies.database import get_db
from parish_authz.core.errors import InvalidIdentifier, NotFound, Unauthenticated
from parish_authz.services.auth import AuthService
from parish_authz.services.membership import MembershipService

from .interfaces import AuthenticatedPrincipal
from .registry import AuthRegistry
from .service import AuthorizationGate

# Import to register default implementations
from . import policy  # noqa: F401


oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)


# ============================================================
# PRINCIPAL
# ============================================================

async def get_current_principal(
    token: str | None = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
) -> AuthenticatedPrincipal:
    """
    Verify the bearer token and load its principal.

    Raises:
        Unauthenticated: no token, invalid token, unknown/inactive user, or
            a token issued before the user's credentials were invalidated
    """
    if not token:
        raise Unauthenticated("No credential presented")

    user, snapshot = await AuthService(db).authenticate(token)
    return AuthenticatedPrincipal(user=user, snapshot=snapshot)


# ============================================================
# GATES
# ============================================================

async def get_authorization_gate(
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
) -> AuthorizationGate:
    """Gate over the token snapshot (fast path)."""
    return AuthorizationGate(principal, AuthRegistry.engine_for(strict=False, db=db))


async def get_strict_authorization_gate(
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
) -> AuthorizationGate:
    """Gate over a fresh resolution (strict path)."""
    return AuthorizationGate(principal, AuthRegistry.engine_for(strict=True, db=db))


def _uuid_param(request: Request, name: str) -> UUID | None:
    raw = request.path_params.get(name) or request.query_params.get(name)
    if raw is None:
        return None
    try:
        return UUID(str(raw))
    except ValueError:
        raise InvalidIdentifier(f"Invalid {name}", **{name: raw}) from None


def require_capability(
    code: str,
    strict: bool = False,
    sub_unit_param: str | None = None,
) -> Callable:
    """
    Dependency factory requiring one capability.

    Args:
        code: Permission code, e.g. "roles.assign"
        strict: Re-resolve from the stores instead of trusting the token
        sub_unit_param: Path/query parameter naming the sub-unit acted on;
            when set, sub-unit roles only count for that sub-unit
    """

    async def check_capability(
        request: Request,
        principal: AuthenticatedPrincipal = Depends(get_current_principal),
        db: AsyncSession = Depends(get_db),
    ) -> AuthenticatedPrincipal:
        engine = AuthRegistry.engine_for(strict, db=db)
        sub_unit_id = _uuid_param(request, sub_unit_param) if sub_unit_param else None
        await AuthorizationGate(principal, engine).require(code, sub_unit_id)
        return principal

    return check_capability


def require_same_organization(
    organization_param: str = "organization_id",
    strict: bool = False,
) -> Callable:
    """
    Dependency factory comparing the caller's organization with one named
    by a path or query parameter.
    """

    async def check_organization(
        request: Request,
        principal: AuthenticatedPrincipal = Depends(get_current_principal),
        db: AsyncSession = Depends(get_db),
    ) -> AuthenticatedPrincipal:
        engine = AuthRegistry.engine_for(strict, db=db)
        organization_id = _uuid_param(request, organization_param)
        await AuthorizationGate(principal, engine).require_same_organization(organization_id)
        return principal

    return check_organization


def require_same_organization_as_user(
    user_param: str = "user_id",
    strict: bool = True,
) -> Callable:
    """Like ``require_same_organization`` with the target user's organization."""

    async def check_organization(
        request: Request,
        principal: AuthenticatedPrincipal = Depends(get_current_principal),
        db: AsyncSession = Depends(get_db),
    ) -> AuthenticatedPrincipal:
        engine = AuthRegistry.engine_for(strict, db=db)
        user_id = _uuid_param(request, user_param)
        if user_id is None:
            raise NotFound("User not found")
        organization_id = await MembershipService(db).organization_of(user_id)
        await AuthorizationGate(principal, engine).require_same_organization(organization_id)
        return principal

    return check_organization


# ============================================================
# TYPE ALIASES FOR CLEAN SIGNATURES
# ============================================================

# Authenticated principal (required)
CurrentPrincipal = Annotated[AuthenticatedPrincipal, Depends(get_current_principal)]

# Fast-path gate
Gate = Annotated[AuthorizationGate, Depends(get_authorization_gate)]

# Strict-path gate
StrictGate = Annotated[AuthorizationGate, Depends(get_strict_authorization_gate)]
