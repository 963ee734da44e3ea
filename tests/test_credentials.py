"""
Tests for permission snapshots and credential lifecycle.
"""

from datetime import timedelta
from uuid import uuid4

import pytest
from jose import jwt

from parish_authz.core.errors import Unauthenticated
from parish_authz.services.assignments import AssignmentService
from parish_authz.services.auth import AuthService
from parish_authz.services.credentials import REFRESH, CredentialIssuer
from parish_authz.services.resolver import ResolvedPermissions
from parish_authz.utils.timezone import utc_now

SECRET = "test-secret"


def _resolved(**overrides) -> ResolvedPermissions:
    data = {
        "principal_id": uuid4(),
        "organization_id": uuid4(),
        "evaluated_at": utc_now(),
        "base": frozenset({"VIEW_FAMILIES", "VIEW_EVENTS"}),
        "by_sub_unit": {uuid4(): frozenset({"MANAGE_WARD_MEMBERS"})},
        "global_role_codes": frozenset(),
    }
    data.update(overrides)
    return ResolvedPermissions(**data)


def test_snapshot_round_trip():
    issuer = CredentialIssuer(secret_key=SECRET)
    resolved = _resolved()

    credential = issuer.issue_credential(resolved)
    snapshot = issuer.verify_credential(credential.token)

    assert snapshot.principal_id == resolved.principal_id
    assert snapshot.token_id == credential.token_id
    assert snapshot.organization_id == resolved.organization_id
    assert snapshot.permissions.base == resolved.base
    assert dict(snapshot.permissions.by_sub_unit) == dict(resolved.by_sub_unit)
    assert credential.expires_in == 15 * 60


def test_expired_credential_is_rejected():
    issuer = CredentialIssuer(secret_key=SECRET, access_ttl=timedelta(seconds=-1))
    credential = issuer.issue_credential(_resolved())

    with pytest.raises(Unauthenticated):
        issuer.verify_credential(credential.token)


def test_wrong_secret_is_rejected():
    credential = CredentialIssuer(secret_key=SECRET).issue_credential(_resolved())

    with pytest.raises(Unauthenticated):
        CredentialIssuer(secret_key="another-secret").verify_credential(credential.token)


def test_wrong_issuer_is_rejected():
    credential = CredentialIssuer(secret_key=SECRET, issuer="elsewhere").issue_credential(_resolved())

    with pytest.raises(Unauthenticated):
        CredentialIssuer(secret_key=SECRET).verify_credential(credential.token)


def test_refresh_token_is_not_an_access_token():
    issuer = CredentialIssuer(secret_key=SECRET)
    refresh = issuer.issue_refresh(uuid4())

    with pytest.raises(Unauthenticated):
        issuer.verify_credential(refresh.token)

    snapshot = issuer.verify_credential(refresh.token, token_type=REFRESH)
    assert snapshot.permissions is None


def test_malformed_claims_are_rejected():
    issuer = CredentialIssuer(secret_key=SECRET)
    now = utc_now()
    token = jwt.encode(
        {
            "sub": "not-a-uuid",
            "iss": issuer.issuer,
            "iat": int(now.timestamp()),
            "exp": int((now + timedelta(minutes=5)).timestamp()),
            "jti": "x",
            "type": "access",
            "perms": [],
        },
        SECRET,
        algorithm="HS256",
    )

    with pytest.raises(Unauthenticated):
        issuer.verify_credential(token)


# ============ Store-backed lifecycle ============


@pytest.mark.asyncio
async def test_login_embeds_current_permissions(db, factory, parish):
    view = await factory.permission("VIEW_FAMILIES")
    role = await factory.role("FAMILY_MEMBER", organization=parish, permissions=[view])
    user = await factory.user(parish, email="anna@example.com")
    await AssignmentService(db).assign_role(user.id, role.id)

    service = AuthService(db)
    tokens = await service.login("anna@example.com", "testpassword123")
    authenticated, snapshot = await service.authenticate(tokens.access.token)

    assert authenticated.id == user.id
    assert snapshot.permissions.base == {"VIEW_FAMILIES"}
    assert user.last_login_at is not None


@pytest.mark.asyncio
async def test_login_failures(db, factory, parish):
    await factory.user(parish, email="anna@example.com")
    await factory.user(parish, email="inactive@example.com", is_active=False)
    service = AuthService(db)

    with pytest.raises(Unauthenticated):
        await service.login("anna@example.com", "wrong-password")
    with pytest.raises(Unauthenticated):
        await service.login("nobody@example.com", "testpassword123")
    with pytest.raises(Unauthenticated):
        await service.login("inactive@example.com", "testpassword123")


@pytest.mark.asyncio
async def test_refresh_picks_up_new_permissions(db, factory, parish):
    view = await factory.permission("VIEW_FAMILIES")
    role = await factory.role("FAMILY_MEMBER", organization=parish, permissions=[view])
    user = await factory.user(parish)
    service = AuthService(db)

    tokens = await service.create_tokens(user)
    _, before = await service.authenticate(tokens.access.token)
    assert before.permissions.base == frozenset()

    await AssignmentService(db).assign_role(user.id, role.id)

    refreshed = await service.refresh(tokens.refresh.token)
    _, after = await service.authenticate(refreshed.access.token)
    assert after.permissions.base == {"VIEW_FAMILIES"}


@pytest.mark.asyncio
async def test_invalidation_rejects_earlier_tokens(db, factory, parish):
    user = await factory.user(parish)
    service = AuthService(db)

    old = await service.create_tokens(user)
    await service.invalidate_credentials(user.id)

    with pytest.raises(Unauthenticated):
        await service.authenticate(old.access.token)
    with pytest.raises(Unauthenticated):
        await service.refresh(old.refresh.token)

    fresh = await service.create_tokens(user)
    authenticated, _ = await service.authenticate(fresh.access.token)
    assert authenticated.id == user.id


@pytest.mark.asyncio
async def test_deactivated_user_token_is_rejected(db, factory, parish):
    user = await factory.user(parish)
    service = AuthService(db)
    tokens = await service.create_tokens(user)

    user.is_active = False
    await db.flush()

    with pytest.raises(Unauthenticated):
        await service.authenticate(tokens.access.token)
