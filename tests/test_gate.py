"""
Tests for the authorization gate and policy engines.
"""

import pytest

from parish_authz.core.auth import (
    AuthenticatedPrincipal,
    AuthorizationGate,
    AuthRegistry,
    SnapshotPolicyEngine,
    StrictPolicyEngine,
)
from parish_authz.core.errors import Forbidden
from parish_authz.models import RoleScope
from parish_authz.services.assignments import AssignmentService
from parish_authz.services.auth import AuthService
from parish_authz.services.overrides import OverrideService


async def _principal(db, user) -> AuthenticatedPrincipal:
    service = AuthService(db)
    tokens = await service.create_tokens(user)
    authenticated, snapshot = await service.authenticate(tokens.access.token)
    return AuthenticatedPrincipal(user=authenticated, snapshot=snapshot)


def test_registry_knows_both_engines():
    assert AuthRegistry.has_policy_engine("snapshot")
    assert AuthRegistry.has_policy_engine("strict")
    assert isinstance(AuthRegistry.get_policy_engine("snapshot"), SnapshotPolicyEngine)
    assert isinstance(AuthRegistry.engine_for(strict=False), SnapshotPolicyEngine)
    with pytest.raises(ValueError):
        AuthRegistry.get_policy_engine("optimistic")


@pytest.mark.asyncio
async def test_require_allows_and_denies(db, factory, parish):
    view = await factory.permission("VIEW_FAMILIES")
    role = await factory.role("FAMILY_MEMBER", organization=parish, permissions=[view])
    user = await factory.user(parish)
    await AssignmentService(db).assign_role(user.id, role.id)

    gate = AuthorizationGate(await _principal(db, user), SnapshotPolicyEngine())

    await gate.require("VIEW_FAMILIES")
    assert not await gate.can("MANAGE_FAMILIES")
    with pytest.raises(Forbidden) as exc_info:
        await gate.require("MANAGE_FAMILIES")

    # The public message never names the missing capability
    assert "MANAGE_FAMILIES" not in exc_info.value.to_dict()["message"]


@pytest.mark.asyncio
async def test_snapshot_is_stale_but_strict_is_not(db, factory, parish):
    manage = await factory.permission("MANAGE_FAMILIES")
    role = await factory.role("CHURCH_ADMIN", organization=parish, permissions=[manage])
    user = await factory.user(parish)
    await AssignmentService(db).assign_role(user.id, role.id)

    principal = await _principal(db, user)
    await OverrideService(db).revoke_permission(user.id, "MANAGE_FAMILIES")

    snapshot_gate = AuthorizationGate(principal, SnapshotPolicyEngine())
    strict_gate = AuthorizationGate(principal, StrictPolicyEngine(db))

    assert await snapshot_gate.can("MANAGE_FAMILIES")
    assert not await strict_gate.can("MANAGE_FAMILIES")


@pytest.mark.asyncio
async def test_sub_unit_context(db, factory, parish):
    manage = await factory.permission("MANAGE_WARD_MEMBERS")
    convener = await factory.role(
        "WARD_CONVENER", scope=RoleScope.SUB_UNIT, organization=parish, permissions=[manage]
    )
    ward_one = await factory.sub_unit(parish, "Ward 1")
    ward_two = await factory.sub_unit(parish, "Ward 2")
    user = await factory.user(parish)
    await factory.member(ward_one, user)
    await AssignmentService(db).assign_sub_unit_role(ward_one.id, user.id, convener.id)

    gate = AuthorizationGate(await _principal(db, user), SnapshotPolicyEngine())

    await gate.require("MANAGE_WARD_MEMBERS", ward_one.id)
    with pytest.raises(Forbidden):
        await gate.require("MANAGE_WARD_MEMBERS", ward_two.id)


@pytest.mark.asyncio
async def test_same_organization(db, factory, parish, other_parish):
    user = await factory.user(parish)
    gate = AuthorizationGate(await _principal(db, user), SnapshotPolicyEngine())

    assert await gate.is_same_organization(parish.id)
    assert not await gate.is_same_organization(other_parish.id)
    assert not await gate.is_same_organization(None)
    with pytest.raises(Forbidden):
        await gate.require_same_organization(other_parish.id)


@pytest.mark.asyncio
async def test_super_role_passes_organization_checks_only(db, factory, parish, other_parish):
    super_role = await factory.role("SUPER_ADMIN", scope=RoleScope.GLOBAL, is_system=True)
    staff = await factory.user()
    await AssignmentService(db).assign_role(staff.id, super_role.id)

    gate = AuthorizationGate(await _principal(db, staff), StrictPolicyEngine(db))

    assert await gate.is_same_organization(parish.id)
    assert await gate.is_same_organization(other_parish.id)
    assert await gate.is_same_organization(None)
    # No capability bypass: the role is linked to nothing
    assert not await gate.can("MANAGE_FAMILIES")


@pytest.mark.asyncio
async def test_super_role_revoked_loses_bypass_on_strict_path(db, factory, parish):
    super_role = await factory.role("SUPER_ADMIN", scope=RoleScope.GLOBAL, is_system=True)
    staff = await factory.user()
    assignment = await AssignmentService(db).assign_role(staff.id, super_role.id)
    principal = await _principal(db, staff)

    await AssignmentService(db).revoke_role_assignment(assignment.id)

    strict = AuthorizationGate(principal, StrictPolicyEngine(db))
    assert not await strict.is_same_organization(parish.id)
