"""
Tests for role and sub-unit assignments.
"""

from datetime import timedelta
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from parish_authz.core.errors import Conflict, Expired, NotFound, ScopeMismatch
from parish_authz.models import PermissionAuditLog, RoleAssignment, RoleScope
from parish_authz.repositories import RoleAssignmentRepository
from parish_authz.services.assignments import AssignmentService, check_expiry
from parish_authz.services.resolver import PermissionResolver
from parish_authz.utils.timezone import has_lapsed, utc_now


async def _active_edges(db, user_id, role_id) -> int:
    stmt = select(func.count()).select_from(RoleAssignment).where(
        RoleAssignment.user_id == user_id,
        RoleAssignment.role_id == role_id,
        RoleAssignment.is_active.is_(True),
    )
    return await db.scalar(stmt)


def test_check_expiry_rejects_past_and_present():
    now = utc_now()
    with pytest.raises(Expired):
        check_expiry(now, now=now)
    with pytest.raises(Expired):
        check_expiry(now - timedelta(days=1), now=now)
    assert check_expiry(None) is None
    assert check_expiry(now + timedelta(days=1), now=now) == now + timedelta(days=1)


def test_naive_expiry_is_read_as_utc():
    now = utc_now()
    naive = (now + timedelta(minutes=1)).replace(tzinfo=None)

    assert not has_lapsed(naive, now)
    assert has_lapsed(naive, now + timedelta(minutes=1))
    assert not has_lapsed(None, now)


# ============ Direct assignments ============


@pytest.mark.asyncio
async def test_assign_role_writes_audit_entry(db, factory, parish):
    role = await factory.role("FAMILY_MEMBER", organization=parish)
    admin = await factory.user(parish)
    user = await factory.user(parish)

    assignment = await AssignmentService(db).assign_role(user.id, role.id, assigned_by=admin.id)

    assert assignment.is_active
    assert assignment.assigned_by == admin.id

    entry = (await db.execute(
        select(PermissionAuditLog).where(PermissionAuditLog.entity_id == str(assignment.id))
    )).scalar_one()
    assert entry.action == "role_assigned"
    assert entry.performed_by == admin.id
    assert entry.new_value["role_code"] == "FAMILY_MEMBER"


@pytest.mark.asyncio
async def test_duplicate_active_assignment_conflicts(db, factory, parish):
    role = await factory.role("CHURCH_ADMIN", organization=parish)
    user = await factory.user(parish)
    service = AssignmentService(db)

    await service.assign_role(user.id, role.id)
    with pytest.raises(Conflict):
        await service.assign_role(user.id, role.id)

    assert await _active_edges(db, user.id, role.id) == 1


@pytest.mark.asyncio
async def test_revoke_then_reassign(db, factory, parish):
    role = await factory.role("CHURCH_ADMIN", organization=parish)
    user = await factory.user(parish)
    service = AssignmentService(db)

    first = await service.assign_role(user.id, role.id)
    await service.revoke_role_assignment(first.id)
    second = await service.assign_role(user.id, role.id)

    assert first.id != second.id
    assert not first.is_active
    assert first.revoked_at is not None
    assert await _active_edges(db, user.id, role.id) == 1


@pytest.mark.asyncio
async def test_revoke_is_idempotent(db, factory, parish):
    role = await factory.role("CHURCH_ADMIN", organization=parish)
    user = await factory.user(parish)
    service = AssignmentService(db)

    assignment = await service.assign_role(user.id, role.id)
    await service.revoke_role_assignment(assignment.id)
    again = await service.revoke_role_assignment(assignment.id)

    assert not again.is_active


@pytest.mark.asyncio
async def test_revoke_unknown_assignment(db):
    with pytest.raises(NotFound):
        await AssignmentService(db).revoke_role_assignment(uuid4())


@pytest.mark.asyncio
async def test_assign_with_past_expiry_is_rejected(db, factory, parish):
    role = await factory.role("CHURCH_ADMIN", organization=parish)
    user = await factory.user(parish)

    with pytest.raises(Expired):
        await AssignmentService(db).assign_role(
            user.id, role.id, expires_at=utc_now() - timedelta(minutes=1)
        )


@pytest.mark.asyncio
async def test_assign_unknown_user_or_role(db, factory, parish):
    role = await factory.role("CHURCH_ADMIN", organization=parish)
    user = await factory.user(parish)
    service = AssignmentService(db)

    with pytest.raises(NotFound):
        await service.assign_role(uuid4(), role.id)
    with pytest.raises(NotFound):
        await service.assign_role(user.id, uuid4())


@pytest.mark.asyncio
async def test_assign_role_of_other_organization(db, factory, parish, other_parish):
    role = await factory.role("CHURCH_ADMIN", organization=other_parish)
    user = await factory.user(parish)

    with pytest.raises(ScopeMismatch):
        await AssignmentService(db).assign_role(user.id, role.id)


@pytest.mark.asyncio
async def test_global_role_can_be_assigned_to_anyone(db, factory, parish):
    role = await factory.role("SUPER_ADMIN", scope=RoleScope.GLOBAL, is_system=True)
    user = await factory.user(parish)

    assignment = await AssignmentService(db).assign_role(user.id, role.id)
    assert assignment.is_active


@pytest.mark.asyncio
async def test_storage_index_rejects_second_active_edge(db, factory, parish):
    role = await factory.role("CHURCH_ADMIN", organization=parish)
    user = await factory.user(parish)
    user_id, role_id = user.id, role.id

    await AssignmentService(db).assign_role(user_id, role_id)
    await db.commit()

    # Skip the service pre-check, as a concurrent writer would
    with pytest.raises(Conflict):
        await RoleAssignmentRepository(db).create(user_id=user_id, role_id=role_id)

    assert await _active_edges(db, user_id, role_id) == 1


@pytest.mark.asyncio
async def test_get_active_finds_only_the_active_edge(db, factory, parish):
    role = await factory.role("CHURCH_ADMIN", organization=parish)
    user = await factory.user(parish)
    service = AssignmentService(db)
    repository = RoleAssignmentRepository(db)

    assert await repository.get_active(user.id, role.id) is None

    first = await service.assign_role(user.id, role.id)
    found = await repository.get_active(user.id, role.id)
    assert found.id == first.id
    assert found.role.code == "CHURCH_ADMIN"

    await service.revoke_role_assignment(first.id)
    assert await repository.get_active(user.id, role.id) is None


@pytest.mark.asyncio
async def test_list_user_roles_hides_lapsed(db, factory, parish):
    member = await factory.role("FAMILY_MEMBER", organization=parish)
    admin = await factory.role("CHURCH_ADMIN", organization=parish)
    user = await factory.user(parish)
    service = AssignmentService(db)

    await service.assign_role(user.id, member.id)
    lapsing = await service.assign_role(user.id, admin.id, expires_at=utc_now() + timedelta(hours=1))
    lapsing.expires_at = utc_now() - timedelta(seconds=1)
    await db.flush()

    current = await service.list_user_roles(user.id)
    everything = await service.list_user_roles(user.id, include_inactive=True)

    assert [a.role_id for a in current] == [member.id]
    assert len(everything) == 2


@pytest.mark.asyncio
async def test_users_with_role(db, factory, parish):
    role = await factory.role("FAMILY_MEMBER", organization=parish)
    holder = await factory.user(parish, email="holder@example.com")
    await factory.user(parish, email="other@example.com")

    await AssignmentService(db).assign_role(holder.id, role.id)

    users = await AssignmentService(db).users_with_role(role.id)
    assert [u.email for u in users] == ["holder@example.com"]


# ============ Sub-unit assignments ============


@pytest.mark.asyncio
async def test_assign_sub_unit_role(db, factory, parish):
    role = await factory.role("WARD_CONVENER", scope=RoleScope.SUB_UNIT, organization=parish)
    ward = await factory.sub_unit(parish)
    user = await factory.user(parish)
    await factory.member(ward, user)

    assignment = await AssignmentService(db).assign_sub_unit_role(
        ward.id, user.id, role.id, is_primary=True, notes="Elected 2026"
    )

    assert assignment.is_primary
    assert assignment.notes == "Elected 2026"

    with pytest.raises(Conflict):
        await AssignmentService(db).assign_sub_unit_role(ward.id, user.id, role.id)


@pytest.mark.asyncio
async def test_sub_unit_assignment_requires_membership(db, factory, parish):
    role = await factory.role("WARD_CONVENER", scope=RoleScope.SUB_UNIT, organization=parish)
    ward = await factory.sub_unit(parish)
    user = await factory.user(parish)

    with pytest.raises(ScopeMismatch):
        await AssignmentService(db).assign_sub_unit_role(ward.id, user.id, role.id)


@pytest.mark.asyncio
async def test_sub_unit_assignment_requires_sub_unit_role(db, factory, parish):
    role = await factory.role("CHURCH_ADMIN", organization=parish)
    ward = await factory.sub_unit(parish)
    user = await factory.user(parish)
    await factory.member(ward, user)

    with pytest.raises(ScopeMismatch):
        await AssignmentService(db).assign_sub_unit_role(ward.id, user.id, role.id)


@pytest.mark.asyncio
async def test_sub_unit_assignment_rejects_foreign_role(db, factory, parish, other_parish):
    role = await factory.role("WARD_CONVENER", scope=RoleScope.SUB_UNIT, organization=other_parish)
    ward = await factory.sub_unit(parish)
    user = await factory.user(parish)
    await factory.member(ward, user)

    with pytest.raises(ScopeMismatch):
        await AssignmentService(db).assign_sub_unit_role(ward.id, user.id, role.id)


@pytest.mark.asyncio
async def test_sub_unit_assignment_unknown_sub_unit(db, factory, parish):
    role = await factory.role("WARD_CONVENER", scope=RoleScope.SUB_UNIT, organization=parish)
    user = await factory.user(parish)

    with pytest.raises(NotFound):
        await AssignmentService(db).assign_sub_unit_role(uuid4(), user.id, role.id)


@pytest.mark.asyncio
async def test_remove_sub_unit_assignment(db, factory, parish):
    view = await factory.permission("VIEW_WARDS")
    role = await factory.role(
        "WARD_SECRETARY", scope=RoleScope.SUB_UNIT, organization=parish, permissions=[view]
    )
    ward = await factory.sub_unit(parish)
    user = await factory.user(parish)
    await factory.member(ward, user)
    service = AssignmentService(db)

    assignment = await service.assign_sub_unit_role(ward.id, user.id, role.id)
    await service.remove_sub_unit_assignment(assignment.id)
    await service.remove_sub_unit_assignment(assignment.id)

    assert not await PermissionResolver(db).has_capability(user.id, "VIEW_WARDS", sub_unit_id=ward.id)
    with pytest.raises(NotFound):
        await service.remove_sub_unit_assignment(uuid4())


# ============ Hygiene ============


@pytest.mark.asyncio
async def test_sweep_lapsed_frees_the_slot(db, factory, parish):
    role = await factory.role("CHURCH_ADMIN", organization=parish)
    user = await factory.user(parish)
    service = AssignmentService(db)

    expires_at = utc_now() + timedelta(hours=1)
    await service.assign_role(user.id, role.id, expires_at=expires_at)

    swept = await service.sweep_lapsed(at=expires_at)
    assert swept == {"role_assignments": 1, "sub_unit_assignments": 0, "direct_overrides": 0}

    reassigned = await service.assign_role(user.id, role.id)
    assert reassigned.is_active
    assert await _active_edges(db, user.id, role.id) == 1


@pytest.mark.asyncio
async def test_lapsed_assignment_is_replaced_without_sweep(db, factory, parish):
    role = await factory.role("CHURCH_ADMIN", organization=parish)
    user = await factory.user(parish)
    service = AssignmentService(db)

    old = await service.assign_role(user.id, role.id, expires_at=utc_now() + timedelta(hours=1))
    old.expires_at = utc_now() - timedelta(seconds=1)
    await db.flush()

    fresh = await service.assign_role(user.id, role.id)

    assert fresh.id != old.id
    assert not old.is_active
    assert old.revoked_at is not None
    assert await _active_edges(db, user.id, role.id) == 1


@pytest.mark.asyncio
async def test_lapsed_sub_unit_assignment_is_replaced_without_sweep(db, factory, parish):
    role = await factory.role("WARD_CONVENER", scope=RoleScope.SUB_UNIT, organization=parish)
    ward = await factory.sub_unit(parish)
    user = await factory.user(parish)
    await factory.member(ward, user)
    service = AssignmentService(db)

    old = await service.assign_sub_unit_role(
        ward.id, user.id, role.id, expires_at=utc_now() + timedelta(hours=1)
    )
    old.expires_at = utc_now() - timedelta(seconds=1)
    await db.flush()

    fresh = await service.assign_sub_unit_role(ward.id, user.id, role.id)
    assert fresh.is_active
    assert not old.is_active


@pytest.mark.asyncio
async def test_sweep_leaves_current_edges(db, factory, parish):
    role = await factory.role("CHURCH_ADMIN", organization=parish)
    user = await factory.user(parish)
    service = AssignmentService(db)
    await service.assign_role(user.id, role.id)

    swept = await service.sweep_lapsed()
    assert sum(swept.values()) == 0
    assert await _active_edges(db, user.id, role.id) == 1
