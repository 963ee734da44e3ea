"""
Tests for permission resolution.
"""

from datetime import timedelta
from uuid import uuid4

import pytest

from parish_authz.core.errors import NotFound
from parish_authz.models import RoleScope
from parish_authz.services.assignments import AssignmentService
from parish_authz.services.catalog import CatalogService
from parish_authz.services.membership import MembershipService
from parish_authz.services.overrides import OverrideService
from parish_authz.services.resolver import (
    PermissionResolver,
    compose_effective_permissions,
)
from parish_authz.utils.timezone import utc_now


# ============ Pure composition ============


def test_compose_unions_roles_and_grants():
    result = compose_effective_permissions({"a", "b"}, {"c"}, set())
    assert result == {"a", "b", "c"}


def test_compose_revoke_beats_role_and_grant():
    result = compose_effective_permissions({"a", "b"}, {"a", "c"}, {"a"})
    assert result == {"b", "c"}


def test_compose_is_order_independent():
    roles = ["x", "y", "z", "x"]
    grants = ["w", "y"]
    revokes = ["z"]
    assert compose_effective_permissions(roles, grants, revokes) == compose_effective_permissions(
        reversed(roles), reversed(grants), reversed(revokes)
    )


def test_compose_empty():
    assert compose_effective_permissions([], [], ["a"]) == frozenset()


# ============ Store-backed resolution ============


@pytest.mark.asyncio
async def test_church_admin_holds_role_permissions(db, factory, parish):
    manage = await factory.permission("MANAGE_FAMILIES")
    view = await factory.permission("VIEW_FAMILIES")
    admin = await factory.role("CHURCH_ADMIN", organization=parish, permissions=[manage, view])
    user = await factory.user(parish)

    await AssignmentService(db).assign_role(user.id, admin.id)

    resolver = PermissionResolver(db)
    assert await resolver.resolve_permissions(user.id) == {"MANAGE_FAMILIES", "VIEW_FAMILIES"}
    assert await resolver.has_capability(user.id, "MANAGE_FAMILIES")


@pytest.mark.asyncio
async def test_revoke_override_beats_role(db, factory, parish):
    manage = await factory.permission("MANAGE_FAMILIES")
    admin = await factory.role("CHURCH_ADMIN", organization=parish, permissions=[manage])
    user = await factory.user(parish)
    await AssignmentService(db).assign_role(user.id, admin.id)

    overrides = OverrideService(db)
    revoke = await overrides.revoke_permission(user.id, "MANAGE_FAMILIES", reason="On leave")

    resolver = PermissionResolver(db)
    assert not await resolver.has_capability(user.id, "MANAGE_FAMILIES")

    await overrides.remove_override(revoke.id)
    assert await resolver.has_capability(user.id, "MANAGE_FAMILIES")


@pytest.mark.asyncio
async def test_grant_override_adds_permission_until_removed(db, factory, parish):
    await factory.permission("VIEW_EVENTS")
    user = await factory.user(parish)
    resolver = PermissionResolver(db)

    assert not await resolver.has_capability(user.id, "VIEW_EVENTS")

    overrides = OverrideService(db)
    grant = await overrides.grant_permission(user.id, "VIEW_EVENTS")
    assert await resolver.has_capability(user.id, "VIEW_EVENTS")

    await overrides.remove_override(grant.id)
    assert not await resolver.has_capability(user.id, "VIEW_EVENTS")


@pytest.mark.asyncio
async def test_grant_and_revoke_on_same_code_revoke_wins(db, factory, parish):
    await factory.permission("VIEW_EVENTS")
    user = await factory.user(parish)

    overrides = OverrideService(db)
    await overrides.grant_permission(user.id, "VIEW_EVENTS")
    await overrides.revoke_permission(user.id, "VIEW_EVENTS")

    assert "VIEW_EVENTS" not in await PermissionResolver(db).resolve_permissions(user.id)


@pytest.mark.asyncio
async def test_new_permission_is_held_by_nobody(db, factory, parish):
    existing = await factory.permission("VIEW_FAMILIES")
    super_role = await factory.role(
        "SUPER_ADMIN",
        scope=RoleScope.GLOBAL,
        permissions=[existing],
        is_system=True,
    )
    staff = await factory.user()
    await AssignmentService(db).assign_role(staff.id, super_role.id)

    await CatalogService(db).create_permission(
        code="MANAGE_CEMETERY",
        name="Manage cemetery",
        module="cemetery",
        action="manage",
    )

    resolved = await PermissionResolver(db).resolve(staff.id)
    assert "VIEW_FAMILIES" in resolved.effective
    assert "MANAGE_CEMETERY" not in resolved.effective
    assert resolved.global_role_codes == {"SUPER_ADMIN"}


@pytest.mark.asyncio
async def test_expiry_boundary(db, factory, parish):
    view = await factory.permission("VIEW_FAMILIES")
    member = await factory.role("FAMILY_MEMBER", organization=parish, permissions=[view])
    user = await factory.user(parish)

    expires_at = utc_now() + timedelta(hours=1)
    await AssignmentService(db).assign_role(user.id, member.id, expires_at=expires_at)

    resolver = PermissionResolver(db)
    assert await resolver.has_capability(user.id, "VIEW_FAMILIES", at=expires_at - timedelta(microseconds=1))
    assert not await resolver.has_capability(user.id, "VIEW_FAMILIES", at=expires_at)
    assert not await resolver.has_capability(user.id, "VIEW_FAMILIES", at=expires_at + timedelta(seconds=1))


@pytest.mark.asyncio
async def test_expired_revoke_stops_counting(db, factory, parish):
    manage = await factory.permission("MANAGE_FAMILIES")
    admin = await factory.role("CHURCH_ADMIN", organization=parish, permissions=[manage])
    user = await factory.user(parish)
    await AssignmentService(db).assign_role(user.id, admin.id)

    expires_at = utc_now() + timedelta(minutes=30)
    await OverrideService(db).revoke_permission(user.id, "MANAGE_FAMILIES", expires_at=expires_at)

    resolver = PermissionResolver(db)
    assert not await resolver.has_capability(user.id, "MANAGE_FAMILIES")
    assert await resolver.has_capability(user.id, "MANAGE_FAMILIES", at=expires_at)


@pytest.mark.asyncio
async def test_inactive_role_and_permission_drop_out(db, factory, parish):
    manage = await factory.permission("MANAGE_FAMILIES")
    view = await factory.permission("VIEW_FAMILIES")
    admin = await factory.role("PARISH_CLERK", organization=parish, permissions=[manage])
    member = await factory.role("FAMILY_MEMBER", organization=parish, permissions=[view])
    user = await factory.user(parish)

    assignments = AssignmentService(db)
    await assignments.assign_role(user.id, admin.id)
    await assignments.assign_role(user.id, member.id)

    catalog = CatalogService(db)
    await catalog.delete_role(admin.id)
    await catalog.deactivate_permission(view.id)

    assert await PermissionResolver(db).resolve_permissions(user.id) == frozenset()


@pytest.mark.asyncio
async def test_sub_unit_role_is_scoped_to_its_sub_unit(db, factory, parish):
    assign = await factory.permission("MANAGE_WARD_MEMBERS")
    convener = await factory.role(
        "WARD_CONVENER",
        scope=RoleScope.SUB_UNIT,
        organization=parish,
        permissions=[assign],
    )
    ward_one = await factory.sub_unit(parish, "Ward 1")
    ward_two = await factory.sub_unit(parish, "Ward 2")
    user = await factory.user(parish)
    await factory.member(ward_one, user)
    await factory.member(ward_two, user)

    await AssignmentService(db).assign_sub_unit_role(ward_one.id, user.id, convener.id)

    resolved = await PermissionResolver(db).resolve(user.id)
    assert resolved.has("MANAGE_WARD_MEMBERS", ward_one.id)
    assert not resolved.has("MANAGE_WARD_MEMBERS", ward_two.id)
    assert "MANAGE_WARD_MEMBERS" not in resolved.base
    # Without a sub-unit context anything held anywhere counts
    assert resolved.has("MANAGE_WARD_MEMBERS")


@pytest.mark.asyncio
async def test_sub_unit_role_stops_counting_when_membership_ends(db, factory, parish):
    view = await factory.permission("VIEW_WARDS")
    secretary = await factory.role(
        "WARD_SECRETARY",
        scope=RoleScope.SUB_UNIT,
        organization=parish,
        permissions=[view],
    )
    ward = await factory.sub_unit(parish)
    user = await factory.user(parish)
    await factory.member(ward, user)
    await AssignmentService(db).assign_sub_unit_role(ward.id, user.id, secretary.id)

    await MembershipService(db).remove_member(ward.id, user.id)

    resolved = await PermissionResolver(db).resolve(user.id)
    assert resolved.by_sub_unit == {}


@pytest.mark.asyncio
async def test_revoke_applies_inside_sub_units(db, factory, parish):
    view = await factory.permission("VIEW_WARDS")
    secretary = await factory.role(
        "WARD_SECRETARY",
        scope=RoleScope.SUB_UNIT,
        organization=parish,
        permissions=[view],
    )
    ward = await factory.sub_unit(parish)
    user = await factory.user(parish)
    await factory.member(ward, user)
    await AssignmentService(db).assign_sub_unit_role(ward.id, user.id, secretary.id)
    await OverrideService(db).revoke_permission(user.id, "VIEW_WARDS")

    resolved = await PermissionResolver(db).resolve(user.id)
    assert not resolved.has("VIEW_WARDS", ward.id)
    assert "VIEW_WARDS" not in resolved.effective


@pytest.mark.asyncio
async def test_inactive_user_resolves_to_nothing(db, factory, parish):
    view = await factory.permission("VIEW_FAMILIES")
    member = await factory.role("FAMILY_MEMBER", organization=parish, permissions=[view])
    user = await factory.user(parish)
    await AssignmentService(db).assign_role(user.id, member.id)

    user.is_active = False
    await db.flush()

    assert await PermissionResolver(db).resolve_permissions(user.id) == frozenset()


@pytest.mark.asyncio
async def test_unknown_user_is_not_found(db):
    with pytest.raises(NotFound):
        await PermissionResolver(db).resolve(uuid4())
