"""
Tests for direct permission overrides.
"""

from datetime import timedelta
from uuid import uuid4

import pytest

from parish_authz.core.errors import Conflict, Expired, NotFound
from parish_authz.models import OverrideKind
from parish_authz.services.catalog import CatalogService
from parish_authz.services.overrides import OverrideService
from parish_authz.services.resolver import PermissionResolver
from parish_authz.utils.timezone import utc_now


@pytest.mark.asyncio
async def test_grant_records_reason_and_grantor(db, factory, parish):
    await factory.permission("VIEW_EVENTS")
    admin = await factory.user(parish)
    user = await factory.user(parish)

    override = await OverrideService(db).grant_permission(
        user.id, "VIEW_EVENTS", reason="Helping with Easter", assigned_by=admin.id
    )

    assert override.kind == OverrideKind.GRANT
    assert override.reason == "Helping with Easter"
    assert override.assigned_by == admin.id


@pytest.mark.asyncio
async def test_duplicate_grant_conflicts(db, factory, parish):
    await factory.permission("VIEW_EVENTS")
    user = await factory.user(parish)
    service = OverrideService(db)

    await service.grant_permission(user.id, "VIEW_EVENTS")
    with pytest.raises(Conflict):
        await service.grant_permission(user.id, "VIEW_EVENTS")


@pytest.mark.asyncio
async def test_grant_and_revoke_coexist(db, factory, parish):
    await factory.permission("VIEW_EVENTS")
    user = await factory.user(parish)
    service = OverrideService(db)

    await service.grant_permission(user.id, "VIEW_EVENTS")
    await service.revoke_permission(user.id, "VIEW_EVENTS")

    overrides = await service.list_overrides(user.id)
    assert {o.kind for o in overrides} == {OverrideKind.GRANT, OverrideKind.REVOKE}


@pytest.mark.asyncio
async def test_unknown_permission_code(db, factory, parish):
    user = await factory.user(parish)

    with pytest.raises(NotFound):
        await OverrideService(db).grant_permission(user.id, "NO_SUCH_PERMISSION")


@pytest.mark.asyncio
async def test_inactive_permission_can_be_revoked_not_granted(db, factory, parish):
    permission = await factory.permission("MANAGE_ACCOUNTS")
    user = await factory.user(parish)
    await CatalogService(db).deactivate_permission(permission.id)
    service = OverrideService(db)

    with pytest.raises(NotFound):
        await service.grant_permission(user.id, "MANAGE_ACCOUNTS")

    revoke = await service.revoke_permission(user.id, "MANAGE_ACCOUNTS")
    assert revoke.kind == OverrideKind.REVOKE


@pytest.mark.asyncio
async def test_override_for_unknown_user(db, factory):
    await factory.permission("VIEW_EVENTS")

    with pytest.raises(NotFound):
        await OverrideService(db).grant_permission(uuid4(), "VIEW_EVENTS")


@pytest.mark.asyncio
async def test_override_with_past_expiry(db, factory, parish):
    await factory.permission("VIEW_EVENTS")
    user = await factory.user(parish)

    with pytest.raises(Expired):
        await OverrideService(db).revoke_permission(
            user.id, "VIEW_EVENTS", expires_at=utc_now() - timedelta(seconds=5)
        )


@pytest.mark.asyncio
async def test_remove_override_is_idempotent(db, factory, parish):
    await factory.permission("VIEW_EVENTS")
    user = await factory.user(parish)
    service = OverrideService(db)

    grant = await service.grant_permission(user.id, "VIEW_EVENTS")
    await service.remove_override(grant.id)
    again = await service.remove_override(grant.id)

    assert not again.is_active
    assert await service.list_overrides(user.id) == []
    assert len(await service.list_overrides(user.id, include_inactive=True)) == 1

    with pytest.raises(NotFound):
        await service.remove_override(uuid4())


@pytest.mark.asyncio
async def test_temporary_grant_lapses(db, factory, parish):
    await factory.permission("VIEW_EVENTS")
    user = await factory.user(parish)

    expires_at = utc_now() + timedelta(days=2)
    await OverrideService(db).grant_permission(user.id, "VIEW_EVENTS", expires_at=expires_at)

    resolver = PermissionResolver(db)
    assert await resolver.has_capability(user.id, "VIEW_EVENTS")
    assert not await resolver.has_capability(user.id, "VIEW_EVENTS", at=expires_at)


@pytest.mark.asyncio
async def test_lapsed_grant_is_replaced_without_sweep(db, factory, parish):
    await factory.permission("VIEW_EVENTS")
    user = await factory.user(parish)
    service = OverrideService(db)

    old = await service.grant_permission(
        user.id, "VIEW_EVENTS", expires_at=utc_now() + timedelta(hours=1)
    )
    old.expires_at = utc_now() - timedelta(seconds=1)
    await db.flush()

    fresh = await service.grant_permission(user.id, "VIEW_EVENTS")

    assert not old.is_active
    assert fresh.is_active
    assert await PermissionResolver(db).has_capability(user.id, "VIEW_EVENTS")
