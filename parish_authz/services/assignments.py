"""
Assignment service.

Creates and removes the two kinds of role edges:

- direct assignments (principal -> role, organization-wide or global)
- sub-unit assignments (member -> role within one sub-unit)

Checks run in a fixed order so callers get a stable error for a request that
is wrong in several ways: NotFound, then Expired, then ScopeMismatch, then
Conflict. The Conflict pre-check only produces a friendlier message; the
partial unique index on the table is what actually guarantees one active
edge per key.

Nothing here touches credentials that were already issued. Holders pick up
the change on their next refresh.
"""

from datetime import datetime
from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from parish_authz.core.errors import Conflict, Expired, NotFound, ScopeMismatch
from parish_authz.models.rbac import Role, RoleAssignment, RoleScope, SubUnitAssignment
from parish_authz.models.user import User
from parish_authz.repositories.catalog import RoleRepository
from parish_authz.repositories.edges import (
    DirectOverrideRepository,
    RoleAssignmentRepository,
    SubUnitAssignmentRepository,
)
from parish_authz.services.audit import AuditAction, AuditService
from parish_authz.services.membership import MembershipService
from parish_authz.utils.timezone import has_lapsed, to_utc, utc_now

logger = structlog.get_logger()


def check_expiry(expires_at: datetime | None, now: datetime | None = None) -> datetime | None:
    """Normalise an expiry to UTC, rejecting one that has already passed."""
    if expires_at is None:
        return None
    expires_at = to_utc(expires_at)
    if has_lapsed(expires_at, now or utc_now()):
        raise Expired(
            "expires_at must be in the future",
            expires_at=expires_at.isoformat(),
        )
    return expires_at


class AssignmentService:
    """Role assignment management."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.roles = RoleRepository(db)
        self.assignments = RoleAssignmentRepository(db)
        self.sub_unit_assignments = SubUnitAssignmentRepository(db)
        self.membership = MembershipService(db)
        self.audit = AuditService(db)

    async def _active_user(self, user_id: UUID) -> User:
        user = await self.membership.get_user(user_id)
        if not user.is_active:
            raise NotFound("User not found", user_id=user_id)
        return user

    async def _active_role(self, role_id: UUID) -> Role:
        role = await self.roles.get_by_id(role_id)
        if role is None or not role.is_active:
            raise NotFound("Role not found", role_id=role_id)
        return role

    # ------------------------------------------------------------------
    # Direct assignments
    # ------------------------------------------------------------------

    async def assign_role(
        self,
        principal_id: UUID,
        role_id: UUID,
        expires_at: datetime | None = None,
        assigned_by: UUID | None = None,
    ) -> RoleAssignment:
        """
        Assign a role to a principal.

        Raises:
            NotFound: principal missing, or role missing/inactive
            Expired: expires_at is not in the future
            ScopeMismatch: organization-owned role, principal of another organization
            Conflict: the principal already holds an active assignment of the role
        """
        user = await self._active_user(principal_id)
        role = await self._active_role(role_id)
        expires_at = check_expiry(expires_at)

        if role.scope != RoleScope.GLOBAL and user.organization_id != role.organization_id:
            raise ScopeMismatch(
                "Role belongs to a different organization than the user",
                role_id=role_id,
                user_id=principal_id,
            )

        existing = await self.assignments.get_active(principal_id, role_id)
        if existing and not await self.assignments.release_if_lapsed(existing, utc_now()):
            raise Conflict("User already has this role", role_id=role_id, user_id=principal_id)

        assignment = await self.assignments.create(
            user_id=principal_id,
            role_id=role_id,
            assigned_by=assigned_by,
            expires_at=expires_at,
        )

        await self.audit.log(
            action=AuditAction.ROLE_ASSIGNED,
            entity_type="role_assignment",
            entity_id=assignment.id,
            performed_by=assigned_by,
            new_value={
                "user_id": principal_id,
                "role_id": role_id,
                "role_code": role.code,
                "expires_at": expires_at,
            },
            description=f"Assigned role {role.code} to {user.email}",
        )
        return assignment

    async def revoke_role_assignment(
        self,
        assignment_id: UUID,
        revoked_by: UUID | None = None,
    ) -> RoleAssignment:
        """Soft-deactivate an assignment. Revoking an inactive one is a no-op."""
        assignment = await self.assignments.get_by_id(assignment_id)
        if assignment is None:
            raise NotFound("Role assignment not found", assignment_id=assignment_id)

        if not assignment.is_active:
            return assignment

        await self.assignments.update(
            assignment,
            is_active=False,
            revoked_at=utc_now(),
            revoked_by=revoked_by,
        )
        await self.audit.log(
            action=AuditAction.ROLE_ASSIGNMENT_REVOKED,
            entity_type="role_assignment",
            entity_id=assignment.id,
            performed_by=revoked_by,
            old_value={"user_id": assignment.user_id, "role_id": assignment.role_id, "is_active": True},
            new_value={"is_active": False},
        )
        return assignment

    async def list_user_roles(self, user_id: UUID, include_inactive: bool = False) -> list[RoleAssignment]:
        await self.membership.get_user(user_id)
        at = None if include_inactive else utc_now()
        return await self.assignments.list_for_user(user_id, at=at)

    async def users_with_role(self, role_id: UUID) -> list[User]:
        role = await self.roles.get_by_id(role_id)
        if role is None:
            raise NotFound("Role not found", role_id=role_id)
        return await self.assignments.users_with_role(role_id, utc_now())

    # ------------------------------------------------------------------
    # Sub-unit assignments
    # ------------------------------------------------------------------

    async def assign_sub_unit_role(
        self,
        sub_unit_id: UUID,
        member_id: UUID,
        role_id: UUID,
        is_primary: bool = False,
        expires_at: datetime | None = None,
        notes: str | None = None,
        assigned_by: UUID | None = None,
    ) -> SubUnitAssignment:
        """
        Assign a sub-unit role to a member of that sub-unit.

        Raises:
            NotFound: sub-unit, member or role missing/inactive
            ScopeMismatch: role is not a sub-unit role, belongs to another
                organization, or the member does not belong to the sub-unit
            Expired: expires_at is not in the future
            Conflict: the same active (sub-unit, member, role) edge exists
        """
        sub_unit = await self.membership.get_sub_unit(sub_unit_id)
        user = await self._active_user(member_id)
        role = await self._active_role(role_id)

        if not role.is_sub_unit_role:
            raise ScopeMismatch("Role is not a sub-unit role", role_id=role_id)
        if role.organization_id != sub_unit.organization_id:
            raise ScopeMismatch(
                "Role belongs to a different organization than the sub-unit",
                role_id=role_id,
                sub_unit_id=sub_unit_id,
            )
        if not await self.membership.is_member(sub_unit_id, member_id):
            raise ScopeMismatch(
                "User is not a member of the sub-unit",
                sub_unit_id=sub_unit_id,
                user_id=member_id,
            )

        expires_at = check_expiry(expires_at)

        existing = await self.sub_unit_assignments.get_active(sub_unit_id, member_id, role_id)
        if existing and not await self.sub_unit_assignments.release_if_lapsed(existing, utc_now()):
            raise Conflict(
                "Member already has this role in the sub-unit",
                sub_unit_id=sub_unit_id,
                user_id=member_id,
                role_id=role_id,
            )

        assignment = await self.sub_unit_assignments.create(
            sub_unit_id=sub_unit_id,
            user_id=member_id,
            role_id=role_id,
            is_primary=is_primary,
            notes=notes,
            assigned_by=assigned_by,
            expires_at=expires_at,
        )

        await self.audit.log(
            action=AuditAction.SUB_UNIT_ROLE_ASSIGNED,
            entity_type="sub_unit_assignment",
            entity_id=assignment.id,
            performed_by=assigned_by,
            new_value={
                "sub_unit_id": sub_unit_id,
                "user_id": member_id,
                "role_id": role_id,
                "role_code": role.code,
                "is_primary": is_primary,
                "expires_at": expires_at,
            },
            description=f"Assigned {role.code} in {sub_unit.name} to {user.email}",
        )
        return assignment

    async def remove_sub_unit_assignment(
        self,
        assignment_id: UUID,
        removed_by: UUID | None = None,
    ) -> SubUnitAssignment:
        """Soft-deactivate a sub-unit assignment. Idempotent."""
        assignment = await self.sub_unit_assignments.get_by_id(assignment_id)
        if assignment is None:
            raise NotFound("Sub-unit assignment not found", assignment_id=assignment_id)

        if not assignment.is_active:
            return assignment

        await self.sub_unit_assignments.update(
            assignment,
            is_active=False,
            revoked_at=utc_now(),
            revoked_by=removed_by,
        )
        await self.audit.log(
            action=AuditAction.SUB_UNIT_ASSIGNMENT_REMOVED,
            entity_type="sub_unit_assignment",
            entity_id=assignment.id,
            performed_by=removed_by,
            old_value={
                "sub_unit_id": assignment.sub_unit_id,
                "user_id": assignment.user_id,
                "role_id": assignment.role_id,
                "is_active": True,
            },
            new_value={"is_active": False},
        )
        return assignment

    # ------------------------------------------------------------------
    # Hygiene
    # ------------------------------------------------------------------

    async def sweep_lapsed(self, at: datetime | None = None) -> dict[str, int]:
        """
        Deactivate edges whose expiry has passed.

        Storage hygiene only: lapsed edges already stop counting at read
        time, and sweeping frees their unique slots.
        """
        at = to_utc(at) if at is not None else utc_now()
        swept = {
            "role_assignments": await self.assignments.deactivate_lapsed(at),
            "sub_unit_assignments": await self.sub_unit_assignments.deactivate_lapsed(at),
            "direct_overrides": await DirectOverrideRepository(self.db).deactivate_lapsed(at),
        }
        if any(swept.values()):
            await self.audit.log(
                action=AuditAction.LAPSED_SWEPT,
                entity_type="sweep",
                entity_id=at.isoformat(),
                new_value=swept,
            )
        logger.info("lapsed_edges_swept", at=at.isoformat(), **swept)
        return swept
