"""
Pytest fixtures for testing.

Provides:
- Async database session on an in-memory SQLite engine
- Test client with the session override
- Factory fixtures for organizations, users, sub-units and the catalog
- Token helpers
"""

from typing import AsyncGenerator
from uuid import uuid4

import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from parish_authz.main import app
from parish_authz.models import (
    Base,
    Organization,
    Permission,
    Role,
    RolePermission,
    RoleScope,
    SubUnit,
    SubUnitMembership,
    User,
)
from parish_authz.api.dependencies.database import get_db
from parish_authz.services.auth import AuthService, hash_password


# Test database URL (SQLite in-memory for speed)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

DEFAULT_PASSWORD = "testpassword123"


@pytest_asyncio.fixture(scope="function")
async def db_engine():
    """Create test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db(db_engine) -> AsyncGenerator[AsyncSession, None]:
    """Database session; uncommitted work is rolled back after the test."""
    session_factory = async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture(scope="function")
async def client(db: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """
    Test client with database session override.
    """

    async def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client

    app.dependency_overrides.clear()


# ============ Factory Fixtures ============


class Factory:
    """Creates organizations, users, sub-units and catalog rows."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _save(self, entity):
        self.db.add(entity)
        await self.db.commit()
        await self.db.refresh(entity)
        return entity

    async def organization(self, name: str = "St. Mary's") -> Organization:
        slug = f"parish-{uuid4().hex[:8]}"
        return await self._save(Organization(name=name, slug=slug))

    async def user(
        self,
        organization: Organization | None = None,
        email: str | None = None,
        password: str = DEFAULT_PASSWORD,
        name: str = "Test User",
        is_active: bool = True,
    ) -> User:
        return await self._save(User(
            email=email or f"user-{uuid4().hex[:8]}@example.com",
            password_hash=hash_password(password),
            name=name,
            organization_id=organization.id if organization else None,
            is_active=is_active,
        ))

    async def sub_unit(self, organization: Organization, name: str = "Ward") -> SubUnit:
        return await self._save(SubUnit(organization_id=organization.id, name=name))

    async def member(self, sub_unit: SubUnit, user: User) -> SubUnitMembership:
        return await self._save(SubUnitMembership(sub_unit_id=sub_unit.id, user_id=user.id))

    async def permission(self, code: str, module: str | None = None) -> Permission:
        module = module or code.split(".")[0].lower()
        return await self._save(Permission(
            code=code,
            name=code,
            module=module,
            action="manage",
        ))

    async def role(
        self,
        code: str,
        scope: RoleScope = RoleScope.ORGANIZATION,
        organization: Organization | None = None,
        permissions: tuple[Permission, ...] | list[Permission] = (),
        is_system: bool = False,
    ) -> Role:
        role = await self._save(Role(
            code=code,
            name=code.replace("_", " ").title(),
            scope=scope,
            organization_id=organization.id if organization else None,
            is_system=is_system,
        ))
        for permission in permissions:
            self.db.add(RolePermission(role_id=role.id, permission_id=permission.id))
        await self.db.commit()
        return role


@pytest_asyncio.fixture
async def factory(db: AsyncSession) -> Factory:
    """Fixture that provides the Factory."""
    return Factory(db)


@pytest_asyncio.fixture
async def parish(factory: Factory) -> Organization:
    return await factory.organization("St. Mary's")


@pytest_asyncio.fixture
async def other_parish(factory: Factory) -> Organization:
    return await factory.organization("St. Joseph's")


# ============ Auth Helpers ============


async def get_auth_headers(db: AsyncSession, user: User) -> dict[str, str]:
    """Issue a fresh access token for any user, with its current permissions."""
    tokens = await AuthService(db).create_tokens(user)
    return {"Authorization": f"Bearer {tokens.access.token}"}


@pytest_asyncio.fixture
async def headers_for(db: AsyncSession):
    """Fixture form of ``get_auth_headers``: ``await headers_for(user)``."""

    async def _headers(user: User) -> dict[str, str]:
        return await get_auth_headers(db, user)

    return _headers
