"""
Authentication routes.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, status
from fastapi.security import OAuth2PasswordRequestForm

from parish_authz.api.dependencies.services import (
    get_auth_service,
    get_permission_resolver,
)
from parish_authz.core.auth import (
    AuthenticatedPrincipal,
    CurrentPrincipal,
    require_capability,
    require_same_organization_as_user,
)
from parish_authz.schemas.auth import (
    MeResponse,
    PermissionSetResponse,
    RefreshTokenRequest,
    TokenResponse,
)
from parish_authz.schemas.user import UserResponse
from parish_authz.services.auth import AuthService, TokenPair
from parish_authz.services.resolver import PermissionResolver, ResolvedPermissions

router = APIRouter()


def _token_response(tokens: TokenPair) -> TokenResponse:
    return TokenResponse(
        access_token=tokens.access.token,
        refresh_token=tokens.refresh.token,
        token_type="bearer",
        expires_in=tokens.access.expires_in,
        expires_at=tokens.access.expires_at,
    )


def permission_set_response(resolved: ResolvedPermissions) -> PermissionSetResponse:
    return PermissionSetResponse(
        user_id=resolved.principal_id,
        organization_id=resolved.organization_id,
        permissions=sorted(resolved.effective),
        base=sorted(resolved.base),
        sub_units={k: sorted(v) for k, v in resolved.by_sub_unit.items()},
        global_roles=sorted(resolved.global_role_codes),
        evaluated_at=resolved.evaluated_at,
    )


@router.post("/login", response_model=TokenResponse)
async def login(
    form_data: OAuth2PasswordRequestForm = Depends(),
    auth_service: AuthService = Depends(get_auth_service),
):
    """Login with email and password."""
    tokens = await auth_service.login(
        email=form_data.username,
        password=form_data.password,
    )
    return _token_response(tokens)


@router.post("/refresh", response_model=TokenResponse)
async def refresh_token(
    data: RefreshTokenRequest,
    auth_service: AuthService = Depends(get_auth_service),
):
    """Exchange a refresh token; permissions are resolved again."""
    tokens = await auth_service.refresh(data.refresh_token)
    return _token_response(tokens)


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(
    principal: CurrentPrincipal,
    auth_service: AuthService = Depends(get_auth_service),
):
    """Invalidate every credential issued to the current user."""
    await auth_service.invalidate_credentials(principal.id, performed_by=principal.id)


@router.get("/me", response_model=MeResponse)
async def get_me(principal: CurrentPrincipal):
    """Current user and the permission snapshot in the presented token."""
    snapshot = principal.snapshot
    permissions = snapshot.permissions
    return MeResponse(
        user=UserResponse.model_validate(principal.user),
        organization_id=snapshot.organization_id,
        permissions=sorted(permissions.base) if permissions else [],
        sub_units={k: sorted(v) for k, v in permissions.by_sub_unit.items()} if permissions else {},
        global_roles=sorted(permissions.global_role_codes) if permissions else [],
        token_issued_at=snapshot.issued_at,
        token_expires_at=snapshot.expires_at,
    )


@router.get("/me/permissions", response_model=PermissionSetResponse)
async def get_my_permissions(
    principal: CurrentPrincipal,
    resolver: PermissionResolver = Depends(get_permission_resolver),
):
    """Current user's permissions, resolved from the stores now."""
    return permission_set_response(await resolver.resolve(principal.id))


@router.post("/users/{user_id}/invalidate", status_code=status.HTTP_204_NO_CONTENT)
async def invalidate_user_credentials(
    user_id: UUID,
    principal: AuthenticatedPrincipal = Depends(require_capability("users.manage", strict=True)),
    _: AuthenticatedPrincipal = Depends(require_same_organization_as_user()),
    auth_service: AuthService = Depends(get_auth_service),
):
    """Force every token of a user to be rejected (e.g. compromised account)."""
    await auth_service.invalidate_credentials(user_id, performed_by=principal.id)
