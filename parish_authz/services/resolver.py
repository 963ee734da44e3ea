"""
Permission resolver.

Computes the exact set of permission codes a principal holds at an instant
by composing four independent sets:

    P_role    permissions of every effective role (direct + sub-unit)
    P_grant   effective GRANT overrides
    P_revoke  effective REVOKE overrides

    effective = (P_role | P_grant) - P_revoke

A REVOKE always wins, however many roles or grants confer the same code.
There is no special case for any "super" role: an all-capability role is
just a role linked to every permission, and a permission added later is
held by nobody until someone links it.

Sub-unit roles are kept apart per sub-unit so that a role held in one ward
does not unlock another ward (see ``ResolvedPermissions.for_sub_unit``).
"""

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Mapping
from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from parish_authz.core.errors import NotFound
from parish_authz.models.org import SubUnit, SubUnitMembership
from parish_authz.models.rbac import (
    DirectOverride,
    OverrideKind,
    Permission,
    Role,
    RoleAssignment,
    RolePermission,
    RoleScope,
    SubUnitAssignment,
)
from parish_authz.models.user import User
from parish_authz.utils.timezone import to_utc, utc_now

logger = structlog.get_logger()


def compose_effective_permissions(
    role_permissions: Iterable[str],
    grants: Iterable[str],
    revokes: Iterable[str],
) -> frozenset[str]:
    """(role | grants) - revokes, independent of input order."""
    return (frozenset(role_permissions) | frozenset(grants)) - frozenset(revokes)


@dataclass(frozen=True)
class ResolvedPermissions:
    """Result of one resolution for one principal at one instant."""

    principal_id: UUID
    organization_id: UUID | None
    evaluated_at: datetime
    base: frozenset[str] = frozenset()
    by_sub_unit: Mapping[UUID, frozenset[str]] = field(default_factory=dict)
    global_role_codes: frozenset[str] = frozenset()

    @property
    def effective(self) -> frozenset[str]:
        """Everything held anywhere: base plus every sub-unit's set."""
        result = self.base
        for codes in self.by_sub_unit.values():
            result = result | codes
        return result

    def for_sub_unit(self, sub_unit_id: UUID | None) -> frozenset[str]:
        """Permissions usable when acting on ``sub_unit_id``."""
        if sub_unit_id is None:
            return self.base
        return self.base | self.by_sub_unit.get(sub_unit_id, frozenset())

    def has(self, code: str, sub_unit_id: UUID | None = None) -> bool:
        if sub_unit_id is None:
            return code in self.effective
        return code in self.for_sub_unit(sub_unit_id)


class PermissionResolver:
    """
    Read-only composition over the catalog, assignment and override stores.

    Usage:
        resolver = PermissionResolver(db)
        codes = await resolver.resolve_permissions(user_id)
        if await resolver.has_capability(user_id, "families.manage"):
            ...
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def resolve(self, principal_id: UUID, at: datetime | None = None) -> ResolvedPermissions:
        """
        Resolve the full permission picture for a principal.

        An inactive principal resolves to the empty set.

        Raises:
            NotFound: the principal does not exist.
        """
        at = to_utc(at) if at is not None else utc_now()

        user = await self.db.get(User, principal_id)
        if user is None:
            raise NotFound("User not found", user_id=principal_id)
        if not user.is_active:
            return ResolvedPermissions(
                principal_id=principal_id,
                organization_id=user.organization_id,
                evaluated_at=at,
            )

        direct_roles = await self._direct_roles(principal_id, at)
        sub_unit_roles = await self._sub_unit_roles(principal_id, at)

        role_ids = set(direct_roles) | {
            role_id for role_ids in sub_unit_roles.values() for role_id in role_ids
        }
        codes_by_role = await self._role_permission_codes(role_ids)
        grants, revokes = await self._overrides(principal_id, at)

        base_role_codes = [
            code for role_id in direct_roles for code in codes_by_role.get(role_id, ())
        ]
        base = compose_effective_permissions(base_role_codes, grants, revokes)

        by_sub_unit = {}
        for sub_unit_id, ids in sub_unit_roles.items():
            sub_codes = [code for role_id in ids for code in codes_by_role.get(role_id, ())]
            codes = compose_effective_permissions(sub_codes, (), revokes)
            if codes:
                by_sub_unit[sub_unit_id] = codes

        resolved = ResolvedPermissions(
            principal_id=principal_id,
            organization_id=user.organization_id,
            evaluated_at=at,
            base=base,
            by_sub_unit=by_sub_unit,
            global_role_codes=frozenset(
                code for code, scope in direct_roles.values() if scope == RoleScope.GLOBAL
            ),
        )

        logger.debug(
            "permissions_resolved",
            user_id=str(principal_id),
            base=len(base),
            sub_units=len(by_sub_unit),
            revoked=len(revokes),
        )
        return resolved

    async def resolve_permissions(
        self,
        principal_id: UUID,
        at: datetime | None = None,
    ) -> frozenset[str]:
        """Effective permission codes for a principal."""
        return (await self.resolve(principal_id, at)).effective

    async def has_capability(
        self,
        principal_id: UUID,
        code: str,
        at: datetime | None = None,
        sub_unit_id: UUID | None = None,
    ) -> bool:
        """Check one capability, optionally in the context of a sub-unit."""
        return (await self.resolve(principal_id, at)).has(code, sub_unit_id)

    # ------------------------------------------------------------------
    # Store reads
    # ------------------------------------------------------------------

    async def _direct_roles(self, principal_id: UUID, at: datetime) -> dict[UUID, tuple[str, RoleScope]]:
        stmt = (
            select(Role.id, Role.code, Role.scope)
            .join(RoleAssignment, RoleAssignment.role_id == Role.id)
            .where(
                RoleAssignment.user_id == principal_id,
                RoleAssignment.effective_at(at),
                Role.is_active.is_(True),
            )
        )
        result = await self.db.execute(stmt)
        return {row.id: (row.code, row.scope) for row in result}

    async def _sub_unit_roles(self, principal_id: UUID, at: datetime) -> dict[UUID, set[UUID]]:
        # Assignments only count while the member still belongs to the sub-unit
        stmt = (
            select(SubUnitAssignment.sub_unit_id, SubUnitAssignment.role_id)
            .join(Role, Role.id == SubUnitAssignment.role_id)
            .join(SubUnit, SubUnit.id == SubUnitAssignment.sub_unit_id)
            .join(
                SubUnitMembership,
                (SubUnitMembership.sub_unit_id == SubUnitAssignment.sub_unit_id)
                & (SubUnitMembership.user_id == SubUnitAssignment.user_id),
            )
            .where(
                SubUnitAssignment.user_id == principal_id,
                SubUnitAssignment.effective_at(at),
                Role.is_active.is_(True),
                SubUnit.is_active.is_(True),
                SubUnitMembership.is_active.is_(True),
            )
        )
        result = await self.db.execute(stmt)

        roles: dict[UUID, set[UUID]] = defaultdict(set)
        for row in result:
            roles[row.sub_unit_id].add(row.role_id)
        return dict(roles)

    async def _role_permission_codes(self, role_ids: set[UUID]) -> dict[UUID, set[str]]:
        if not role_ids:
            return {}
        stmt = (
            select(RolePermission.role_id, Permission.code)
            .join(Permission, Permission.id == RolePermission.permission_id)
            .where(
                RolePermission.role_id.in_(role_ids),
                Permission.is_active.is_(True),
            )
        )
        result = await self.db.execute(stmt)

        codes: dict[UUID, set[str]] = defaultdict(set)
        for row in result:
            codes[row.role_id].add(row.code)
        return codes

    async def _overrides(self, principal_id: UUID, at: datetime) -> tuple[set[str], set[str]]:
        stmt = (
            select(DirectOverride.kind, Permission.code, Permission.is_active)
            .join(Permission, Permission.id == DirectOverride.permission_id)
            .where(
                DirectOverride.user_id == principal_id,
                DirectOverride.effective_at(at),
            )
        )
        result = await self.db.execute(stmt)

        grants: set[str] = set()
        revokes: set[str] = set()
        for row in result:
            if row.kind == OverrideKind.REVOKE:
                revokes.add(row.code)
            elif row.is_active:
                grants.add(row.code)
        return grants, revokes
