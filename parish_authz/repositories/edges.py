"""
Edge repositories: role assignments, sub-unit assignments and overrides.

``get_active`` looks for the row occupying the "one active edge" slot, which
is ``is_active`` only. ``release_if_lapsed`` frees a slot still held by an
edge whose expiry has passed, so a new edge never waits for the sweep.
"""

from datetime import datetime
from uuid import UUID
from typing import TypeVar
from sqlalchemy import select

from parish_authz.models.rbac import (
    DirectOverride,
    OverrideKind,
    RoleAssignment,
    SubUnitAssignment,
)
from parish_authz.models.user import User
from parish_authz.repositories.base import BaseRepository

EdgeT = TypeVar("EdgeT", RoleAssignment, SubUnitAssignment, DirectOverride)


class EdgeRepository(BaseRepository[EdgeT]):
    """Shared behaviour of the time-bound grant edges."""

    async def release_if_lapsed(self, edge: EdgeT, at: datetime) -> bool:
        """Deactivate ``edge`` if it no longer counts at ``at``; True when released."""
        if edge.is_effective(at):
            return False
        edge.is_active = False
        if hasattr(edge, "revoked_at"):
            edge.revoked_at = at
        await self.db.flush()
        return True

    async def deactivate_lapsed(self, at: datetime) -> int:
        """Flip ``is_active`` off on active edges whose expiry has passed."""
        stmt = select(self.model).where(
            self.model.is_active.is_(True),
            self.model.expires_at.is_not(None),
            self.model.expires_at <= at,
        )
        result = await self.db.execute(stmt)
        lapsed = list(result.unique().scalars().all())
        for edge in lapsed:
            edge.is_active = False
        await self.db.flush()
        return len(lapsed)


class RoleAssignmentRepository(EdgeRepository[RoleAssignment]):
    model = RoleAssignment

    async def get_active(self, user_id: UUID, role_id: UUID) -> RoleAssignment | None:
        return await self.get_one(user_id=user_id, role_id=role_id, is_active=True)

    async def list_for_user(
        self,
        user_id: UUID,
        at: datetime | None = None,
    ) -> list[RoleAssignment]:
        """Assignments for a user; only the effective ones when ``at`` is given."""
        stmt = select(RoleAssignment).where(RoleAssignment.user_id == user_id)
        if at is not None:
            stmt = stmt.where(RoleAssignment.effective_at(at))
        stmt = stmt.order_by(RoleAssignment.assigned_at)
        result = await self.db.execute(stmt)
        return list(result.unique().scalars().all())

    async def users_with_role(self, role_id: UUID, at: datetime) -> list[User]:
        stmt = (
            select(User)
            .join(RoleAssignment, RoleAssignment.user_id == User.id)
            .where(RoleAssignment.role_id == role_id, RoleAssignment.effective_at(at))
            .order_by(User.email)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())


class SubUnitAssignmentRepository(EdgeRepository[SubUnitAssignment]):
    model = SubUnitAssignment

    async def get_active(
        self,
        sub_unit_id: UUID,
        user_id: UUID,
        role_id: UUID,
    ) -> SubUnitAssignment | None:
        return await self.get_one(
            sub_unit_id=sub_unit_id,
            user_id=user_id,
            role_id=role_id,
            is_active=True,
        )

    async def list_for_sub_unit(self, sub_unit_id: UUID, at: datetime) -> list[SubUnitAssignment]:
        stmt = (
            select(SubUnitAssignment)
            .where(
                SubUnitAssignment.sub_unit_id == sub_unit_id,
                SubUnitAssignment.effective_at(at),
            )
            .order_by(SubUnitAssignment.is_primary.desc(), SubUnitAssignment.assigned_at)
        )
        result = await self.db.execute(stmt)
        return list(result.unique().scalars().all())


class DirectOverrideRepository(EdgeRepository[DirectOverride]):
    model = DirectOverride

    async def get_active(
        self,
        user_id: UUID,
        permission_id: UUID,
        kind: OverrideKind,
    ) -> DirectOverride | None:
        return await self.get_one(
            user_id=user_id,
            permission_id=permission_id,
            kind=kind,
            is_active=True,
        )

    async def list_for_user(
        self,
        user_id: UUID,
        at: datetime | None = None,
    ) -> list[DirectOverride]:
        stmt = select(DirectOverride).where(DirectOverride.user_id == user_id)
        if at is not None:
            stmt = stmt.where(DirectOverride.effective_at(at))
        stmt = stmt.order_by(DirectOverride.assigned_at)
        result = await self.db.execute(stmt)
        return list(result.unique().scalars().all())
