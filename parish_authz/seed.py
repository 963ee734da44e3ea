"""
Seed the permission catalog and the built-in roles.

Safe to run repeatedly: existing permissions, roles and links are left alone.

Usage:
    python -m parish_authz.seed
    python -m parish_authz.seed --organization <uuid>
"""

import argparse
import asyncio
from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from parish_authz.core.config import settings
from parish_authz.core.logging import configure_logging
from parish_authz.models.database import async_session_factory, init_db
from parish_authz.models.rbac import Permission, Role, RoleScope
from parish_authz.repositories.catalog import (
    PermissionRepository,
    RolePermissionRepository,
    RoleRepository,
)

logger = structlog.get_logger()


# (code, module, action, description)
DEFAULT_PERMISSIONS = [
    # Authorization administration
    ("roles.create", "roles", "create", "Create roles"),
    ("roles.update", "roles", "update", "Update roles"),
    ("roles.delete", "roles", "delete", "Delete roles"),
    ("roles.assign", "roles", "assign", "Assign and revoke roles"),
    ("permissions.manage", "permissions", "manage", "Manage permissions, links and overrides"),

    # Users
    ("users.view", "users", "view", "View users and their roles"),
    ("users.manage", "users", "manage", "Manage users and their sessions"),

    # Families
    ("VIEW_FAMILIES", "families", "view", "View families"),
    ("MANAGE_FAMILIES", "families", "manage", "Create, update and delete families"),

    # Wards
    ("VIEW_WARDS", "wards", "view", "View wards"),
    ("MANAGE_WARDS", "wards", "manage", "Create, update and delete wards"),
    ("MANAGE_WARD_MEMBERS", "wards", "manage_members", "Add and remove ward members"),

    # Events
    ("VIEW_EVENTS", "events", "view", "View events"),
    ("MANAGE_EVENTS", "events", "manage", "Create, update and delete events"),

    # Prayer requests
    ("CREATE_PRAYER_REQUEST", "prayer_requests", "create", "Submit prayer requests"),
    ("VIEW_PRAYER_REQUESTS", "prayer_requests", "view", "View prayer requests"),
    ("MANAGE_PRAYER_REQUESTS", "prayer_requests", "manage", "Moderate prayer requests"),

    # Accounts
    ("VIEW_ACCOUNTS", "accounts", "view", "View parish accounts"),
    ("MANAGE_ACCOUNTS", "accounts", "manage", "Record and edit parish accounts"),
]


# Held by the all-capability role; every permission in the default catalog.
SUPER_ROLE = {
    "name": "Super Administrator",
    "description": "Full access across every organization",
    "priority": 1000,
}


ORGANIZATION_ROLES = {
    "CHURCH_ADMIN": {
        "name": "Church Administrator",
        "description": "Administers a single parish",
        "priority": 100,
        "permissions": [
            "roles.create", "roles.update", "roles.delete", "roles.assign",
            "users.view", "users.manage",
            "VIEW_FAMILIES", "MANAGE_FAMILIES",
            "VIEW_WARDS", "MANAGE_WARDS", "MANAGE_WARD_MEMBERS",
            "VIEW_EVENTS", "MANAGE_EVENTS",
            "VIEW_PRAYER_REQUESTS", "MANAGE_PRAYER_REQUESTS",
            "VIEW_ACCOUNTS", "MANAGE_ACCOUNTS",
        ],
    },
    "FAMILY_MEMBER": {
        "name": "Family Member",
        "description": "Regular parishioner",
        "priority": 10,
        "permissions": [
            "VIEW_FAMILIES",
            "VIEW_EVENTS",
            "CREATE_PRAYER_REQUEST",
        ],
    },
}


WARD_ROLES = {
    "WARD_CONVENER": ("Ward Convener", 60, ["VIEW_WARDS", "MANAGE_WARD_MEMBERS", "VIEW_FAMILIES", "MANAGE_EVENTS"]),
    "WARD_SECRETARY": ("Ward Secretary", 50, ["VIEW_WARDS", "VIEW_FAMILIES", "MANAGE_EVENTS"]),
    "WARD_TREASURER": ("Ward Treasurer", 50, ["VIEW_WARDS", "VIEW_ACCOUNTS", "MANAGE_ACCOUNTS"]),
    "WARD_PRAYER_COORD": ("Ward Prayer Coordinator", 40, ["VIEW_WARDS", "VIEW_PRAYER_REQUESTS"]),
    "WARD_YOUTH_LEADER": ("Ward Youth Leader", 40, ["VIEW_WARDS", "VIEW_EVENTS"]),
    "WARD_CATECHISM": ("Ward Catechism Teacher", 40, ["VIEW_WARDS", "VIEW_FAMILIES"]),
    "WARD_SOCIAL_SERVICE": ("Ward Social Service", 40, ["VIEW_WARDS", "VIEW_FAMILIES"]),
    "WARD_FAMILY_APOSTOLATE": ("Ward Family Apostolate", 40, ["VIEW_WARDS", "VIEW_FAMILIES"]),
    "WARD_CHOIR_LEADER": ("Ward Choir Leader", 30, ["VIEW_WARDS", "VIEW_EVENTS"]),
    "WARD_SACRISTAN": ("Ward Sacristan", 30, ["VIEW_WARDS", "VIEW_EVENTS"]),
}


async def seed_permissions(db: AsyncSession) -> dict[str, Permission]:
    """
    Create the default permissions.

    Returns:
        Mapping of permission code to Permission
    """
    repo = PermissionRepository(db)
    permissions: dict[str, Permission] = {}

    for code, module, action, description in DEFAULT_PERMISSIONS:
        existing = await repo.get_by_code(code)
        if existing:
            permissions[code] = existing
            continue

        permissions[code] = await repo.create(
            code=code,
            name=description,
            module=module,
            action=action,
            description=description,
        )
        logger.info("permission_seeded", code=code)

    return permissions


async def _ensure_role(
    db: AsyncSession,
    code: str,
    scope: RoleScope,
    organization_id: UUID | None,
    name: str,
    priority: int,
    description: str | None = None,
    is_system: bool = True,
) -> Role:
    roles = RoleRepository(db)
    role = await roles.get_by_code(code, organization_id)
    if role is None:
        role = await roles.create(
            code=code,
            name=name,
            scope=scope,
            organization_id=organization_id,
            priority=priority,
            description=description,
            is_system=is_system,
        )
        logger.info("role_seeded", code=code, organization_id=str(organization_id) if organization_id else None)
    return role


async def _ensure_links(db: AsyncSession, role: Role, permissions: list[Permission]) -> int:
    links = RolePermissionRepository(db)
    created = 0
    for permission in permissions:
        if await links.get_link(role.id, permission.id):
            continue
        await links.create(role_id=role.id, permission_id=permission.id)
        created += 1
    return created


async def seed_super_role(db: AsyncSession, permissions: dict[str, Permission]) -> Role:
    """Create the global all-capability role and link the seeded catalog to it."""
    role = await _ensure_role(
        db,
        code=settings.auth.super_role_code,
        scope=RoleScope.GLOBAL,
        organization_id=None,
        **SUPER_ROLE,
    )
    await _ensure_links(db, role, list(permissions.values()))
    return role


async def seed_organization_roles(
    db: AsyncSession,
    organization_id: UUID,
    permissions: dict[str, Permission] | None = None,
) -> list[Role]:
    """Create the parish-level and ward-level roles for one organization."""
    if permissions is None:
        permissions = await seed_permissions(db)

    roles: list[Role] = []
    for code, config in ORGANIZATION_ROLES.items():
        role = await _ensure_role(
            db,
            code=code,
            scope=RoleScope.ORGANIZATION,
            organization_id=organization_id,
            name=config["name"],
            priority=config["priority"],
            description=config["description"],
        )
        await _ensure_links(db, role, [permissions[c] for c in config["permissions"]])
        roles.append(role)

    for code, (name, priority, codes) in WARD_ROLES.items():
        role = await _ensure_role(
            db,
            code=code,
            scope=RoleScope.SUB_UNIT,
            organization_id=organization_id,
            name=name,
            priority=priority,
        )
        await _ensure_links(db, role, [permissions[c] for c in codes])
        roles.append(role)

    return roles


async def seed(organization_ids: list[UUID] | None = None) -> None:
    async with async_session_factory() as db:
        permissions = await seed_permissions(db)
        await seed_super_role(db, permissions)
        for organization_id in organization_ids or []:
            await seed_organization_roles(db, organization_id, permissions)
        await db.commit()

    logger.info(
        "seed_complete",
        permissions=len(permissions),
        organizations=len(organization_ids or []),
    )


def main() -> None:
    parser = argparse.ArgumentParser(description="Seed permissions and built-in roles")
    parser.add_argument(
        "--organization",
        action="append",
        type=UUID,
        default=[],
        help="Also seed organization and ward roles for this organization id",
    )
    parser.add_argument(
        "--create-tables",
        action="store_true",
        help="Create tables before seeding (development only)",
    )
    args = parser.parse_args()

    configure_logging()

    async def run() -> None:
        if args.create_tables:
            await init_db()
        await seed(args.organization)

    asyncio.run(run())


if __name__ == "__main__":
    main()
