"""
Direct override service.

Per-principal exceptions to role bundling. A GRANT hands out one permission
without a role; a REVOKE takes one away no matter what else confers it.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from parish_authz.core.errors import Conflict, NotFound
from parish_authz.models.rbac import DirectOverride, OverrideKind, Permission
from parish_authz.repositories.catalog import PermissionRepository
from parish_authz.repositories.edges import DirectOverrideRepository
from parish_authz.services.assignments import check_expiry
from parish_authz.services.audit import AuditAction, AuditService
from parish_authz.services.membership import MembershipService
from parish_authz.utils.timezone import utc_now


class OverrideService:
    """Grant and revoke individual permissions for a principal."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.permissions = PermissionRepository(db)
        self.overrides = DirectOverrideRepository(db)
        self.membership = MembershipService(db)
        self.audit = AuditService(db)

    async def grant_permission(
        self,
        principal_id: UUID,
        permission_code: str,
        expires_at: datetime | None = None,
        reason: str | None = None,
        assigned_by: UUID | None = None,
    ) -> DirectOverride:
        """Create an active GRANT. The permission must exist and be active."""
        return await self._create(
            OverrideKind.GRANT,
            principal_id,
            permission_code,
            expires_at=expires_at,
            reason=reason,
            assigned_by=assigned_by,
        )

    async def revoke_permission(
        self,
        principal_id: UUID,
        permission_code: str,
        expires_at: datetime | None = None,
        reason: str | None = None,
        assigned_by: UUID | None = None,
    ) -> DirectOverride:
        """Create an active REVOKE. Coexists with any GRANT for the same code."""
        return await self._create(
            OverrideKind.REVOKE,
            principal_id,
            permission_code,
            expires_at=expires_at,
            reason=reason,
            assigned_by=assigned_by,
        )

    async def remove_override(
        self,
        override_id: UUID,
        removed_by: UUID | None = None,
    ) -> DirectOverride:
        """Deactivate a GRANT or REVOKE. Idempotent."""
        override = await self.overrides.get_by_id(override_id)
        if override is None:
            raise NotFound("Override not found", override_id=override_id)

        if not override.is_active:
            return override

        await self.overrides.update(override, is_active=False)
        await self.audit.log(
            action=AuditAction.OVERRIDE_REMOVED,
            entity_type="direct_override",
            entity_id=override.id,
            performed_by=removed_by,
            old_value={
                "user_id": override.user_id,
                "permission_id": override.permission_id,
                "kind": override.kind,
                "is_active": True,
            },
            new_value={"is_active": False},
        )
        return override

    async def list_overrides(self, principal_id: UUID, include_inactive: bool = False) -> list[DirectOverride]:
        await self.membership.get_user(principal_id)
        at = None if include_inactive else utc_now()
        return await self.overrides.list_for_user(principal_id, at=at)

    async def _permission(self, code: str, kind: OverrideKind) -> Permission:
        permission = await self.permissions.get_by_code(code)
        # Revoking a deactivated permission is allowed, granting one is not
        if permission is None or (kind == OverrideKind.GRANT and not permission.is_active):
            raise NotFound("Permission not found", code=code)
        return permission

    async def _create(
        self,
        kind: OverrideKind,
        principal_id: UUID,
        permission_code: str,
        expires_at: datetime | None,
        reason: str | None,
        assigned_by: UUID | None,
    ) -> DirectOverride:
        user = await self.membership.get_user(principal_id)
        if not user.is_active:
            raise NotFound("User not found", user_id=principal_id)
        permission = await self._permission(permission_code, kind)
        expires_at = check_expiry(expires_at)

        existing = await self.overrides.get_active(principal_id, permission.id, kind)
        if existing and not await self.overrides.release_if_lapsed(existing, utc_now()):
            raise Conflict(
                f"User already has an active {kind.value} for this permission",
                user_id=principal_id,
                code=permission_code,
            )

        override = await self.overrides.create(
            user_id=principal_id,
            permission_id=permission.id,
            kind=kind,
            reason=reason,
            expires_at=expires_at,
            assigned_by=assigned_by,
        )

        action = AuditAction.OVERRIDE_GRANTED if kind == OverrideKind.GRANT else AuditAction.OVERRIDE_REVOKED
        await self.audit.log(
            action=action,
            entity_type="direct_override",
            entity_id=override.id,
            performed_by=assigned_by,
            new_value={
                "user_id": principal_id,
                "permission_code": permission.code,
                "kind": kind,
                "expires_at": expires_at,
                "reason": reason,
            },
            description=f"{kind.value} {permission.code} for {user.email}",
        )
        return override
