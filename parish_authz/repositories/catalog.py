"""
Catalog repositories: permissions, roles and role -> permission links.
"""

from uuid import UUID
from sqlalchemy import select

from parish_authz.models.rbac import Permission, Role, RolePermission
from parish_authz.repositories.base import BaseRepository


class PermissionRepository(BaseRepository[Permission]):
    model = Permission

    async def get_by_code(self, code: str) -> Permission | None:
        return await self.get_one(code=code)

    async def list_active(self, module: str | None = None) -> list[Permission]:
        stmt = select(Permission).where(Permission.is_active.is_(True))
        if module is not None:
            stmt = stmt.where(Permission.module == module)
        stmt = stmt.order_by(Permission.module, Permission.code)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())


class RoleRepository(BaseRepository[Role]):
    model = Role

    async def get_by_code(self, code: str, organization_id: UUID | None) -> Role | None:
        """Look up a role by code within its owning scope (None = global)."""
        stmt = select(Role).where(Role.code == code)
        if organization_id is None:
            stmt = stmt.where(Role.organization_id.is_(None))
        else:
            stmt = stmt.where(Role.organization_id == organization_id)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def list_visible(
        self,
        organization_id: UUID | None = None,
        include_inactive: bool = False,
    ) -> list[Role]:
        """
        Roles an organization can see: its own plus the global ones.

        Without an organization, every role is returned.
        """
        stmt = select(Role)
        if organization_id is not None:
            stmt = stmt.where(
                (Role.organization_id == organization_id) | Role.organization_id.is_(None)
            )
        if not include_inactive:
            stmt = stmt.where(Role.is_active.is_(True))
        stmt = stmt.order_by(Role.priority.desc(), Role.code)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())


class RolePermissionRepository(BaseRepository[RolePermission]):
    model = RolePermission

    async def get_link(self, role_id: UUID, permission_id: UUID) -> RolePermission | None:
        return await self.get_one(role_id=role_id, permission_id=permission_id)

    async def permissions_for_role(self, role_id: UUID) -> list[Permission]:
        stmt = (
            select(Permission)
            .join(RolePermission, RolePermission.permission_id == Permission.id)
            .where(RolePermission.role_id == role_id)
            .order_by(Permission.module, Permission.code)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())
