"""
Catalog service: permission and role definitions.

Permissions are opt-in. Creating one never links it to any role, including
the all-capability role; an administrator must link it explicitly.
"""

from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from parish_authz.core.errors import Conflict, InvalidRole, NotFound, ProtectedRole
from parish_authz.models.org import Organization
from parish_authz.models.rbac import Permission, Role, RolePermission, RoleScope
from parish_authz.repositories.catalog import (
    PermissionRepository,
    RolePermissionRepository,
    RoleRepository,
)
from parish_authz.services.audit import AuditAction, AuditService, compute_changes


class CatalogService:
    """Permission and role catalog management."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.permissions = PermissionRepository(db)
        self.roles = RoleRepository(db)
        self.links = RolePermissionRepository(db)
        self.audit = AuditService(db)

    # ------------------------------------------------------------------
    # Permissions
    # ------------------------------------------------------------------

    async def list_permissions(self, module: str | None = None) -> list[Permission]:
        return await self.permissions.list_active(module=module)

    async def get_permission(self, permission_id: UUID) -> Permission:
        permission = await self.permissions.get_by_id(permission_id)
        if permission is None:
            raise NotFound("Permission not found", permission_id=permission_id)
        return permission

    async def create_permission(
        self,
        code: str,
        name: str,
        module: str,
        action: str,
        description: str | None = None,
        created_by: UUID | None = None,
    ) -> Permission:
        if await self.permissions.get_by_code(code):
            raise Conflict("Permission code already exists", code=code)

        permission = await self.permissions.create(
            code=code,
            name=name,
            module=module,
            action=action,
            description=description,
        )
        await self.audit.log(
            action=AuditAction.PERMISSION_CREATED,
            entity_type="permission",
            entity_id=permission.id,
            performed_by=created_by,
            new_value={"code": code, "module": module, "action": action},
        )
        return permission

    async def deactivate_permission(
        self,
        permission_id: UUID,
        deactivated_by: UUID | None = None,
    ) -> Permission:
        """Deactivate a permission; it drops out of every resolved set."""
        permission = await self.get_permission(permission_id)
        if not permission.is_active:
            return permission

        await self.permissions.update(permission, is_active=False)
        await self.audit.log(
            action=AuditAction.PERMISSION_DEACTIVATED,
            entity_type="permission",
            entity_id=permission.id,
            performed_by=deactivated_by,
            old_value={"is_active": True},
            new_value={"is_active": False},
        )
        return permission

    # ------------------------------------------------------------------
    # Roles
    # ------------------------------------------------------------------

    async def list_roles(
        self,
        organization_id: UUID | None = None,
        include_inactive: bool = False,
    ) -> list[Role]:
        return await self.roles.list_visible(organization_id, include_inactive=include_inactive)

    async def get_role(self, role_id: UUID) -> Role:
        role = await self.roles.get_by_id(role_id)
        if role is None:
            raise NotFound("Role not found", role_id=role_id)
        return role

    async def create_role(
        self,
        code: str,
        name: str,
        scope: RoleScope,
        organization_id: UUID | None = None,
        priority: int = 0,
        description: str | None = None,
        is_system: bool = False,
        created_by: UUID | None = None,
    ) -> Role:
        """
        Create a role.

        Raises:
            InvalidRole: GLOBAL with an organization, or non-GLOBAL without one
            NotFound: the owning organization does not exist
            Conflict: the code is taken within the owning scope
        """
        if scope == RoleScope.GLOBAL and organization_id is not None:
            raise InvalidRole("Global roles cannot belong to an organization")
        if scope != RoleScope.GLOBAL and organization_id is None:
            raise InvalidRole(f"{scope.value} roles require an organization")

        if organization_id is not None and await self.db.get(Organization, organization_id) is None:
            raise NotFound("Organization not found", organization_id=organization_id)

        if await self.roles.get_by_code(code, organization_id):
            raise Conflict("Role code already exists", code=code)

        role = await self.roles.create(
            code=code,
            name=name,
            scope=scope,
            organization_id=organization_id,
            priority=priority,
            description=description,
            is_system=is_system,
        )
        await self.audit.log(
            action=AuditAction.ROLE_CREATED,
            entity_type="role",
            entity_id=role.id,
            performed_by=created_by,
            new_value={
                "code": code,
                "scope": scope,
                "organization_id": organization_id,
                "priority": priority,
            },
        )
        return role

    async def update_role(
        self,
        role_id: UUID,
        updated_by: UUID | None = None,
        **data,
    ) -> Role:
        """
        Update name, code, description or priority.

        System roles keep their code and name.
        """
        role = await self.get_role(role_id)
        data = {k: v for k, v in data.items() if k in ("code", "name", "description", "priority")}

        old = {k: getattr(role, k) for k in data}
        changes = compute_changes(old, data)
        if not changes:
            return role

        if role.is_system and ({"code", "name"} & set(changes)):
            raise ProtectedRole("System roles cannot be renamed", role_id=role_id)

        if "code" in changes and await self.roles.get_by_code(data["code"], role.organization_id):
            raise Conflict("Role code already exists", code=data["code"])

        await self.roles.update(role, **data)
        await self.audit.log(
            action=AuditAction.ROLE_UPDATED,
            entity_type="role",
            entity_id=role.id,
            performed_by=updated_by,
            old_value={k: c["old"] for k, c in changes.items()},
            new_value={k: c["new"] for k, c in changes.items()},
        )
        return role

    async def delete_role(self, role_id: UUID, deleted_by: UUID | None = None) -> Role:
        """
        Soft-delete a role. Its assignments stop counting immediately.

        Raises:
            ProtectedRole: the role is a system role
        """
        role = await self.get_role(role_id)
        if role.is_system:
            raise ProtectedRole("System roles cannot be deleted", role_id=role_id)
        if not role.is_active:
            return role

        await self.roles.update(role, is_active=False)
        await self.audit.log(
            action=AuditAction.ROLE_DELETED,
            entity_type="role",
            entity_id=role.id,
            performed_by=deleted_by,
            old_value={"code": role.code, "is_active": True},
            new_value={"is_active": False},
        )
        return role

    # ------------------------------------------------------------------
    # Role -> permission links
    # ------------------------------------------------------------------

    async def role_permissions(self, role_id: UUID) -> list[Permission]:
        await self.get_role(role_id)
        return await self.links.permissions_for_role(role_id)

    async def link_permission(
        self,
        role_id: UUID,
        permission_id: UUID,
        granted_by: UUID | None = None,
    ) -> RolePermission:
        role = await self.get_role(role_id)
        permission = await self.get_permission(permission_id)
        if not permission.is_active:
            raise NotFound("Permission not found", permission_id=permission_id)

        if await self.links.get_link(role_id, permission_id):
            raise Conflict("Permission already linked to role", role_id=role_id, code=permission.code)

        link = await self.links.create(
            role_id=role_id,
            permission_id=permission_id,
            granted_by=granted_by,
        )
        await self.audit.log(
            action=AuditAction.PERMISSION_LINKED,
            entity_type="role",
            entity_id=role.id,
            performed_by=granted_by,
            new_value={"permission_code": permission.code},
            description=f"Linked {permission.code} to {role.code}",
        )
        return link

    async def unlink_permission(
        self,
        role_id: UUID,
        permission_id: UUID,
        removed_by: UUID | None = None,
    ) -> None:
        link = await self.links.get_link(role_id, permission_id)
        if link is None:
            raise NotFound("Permission is not linked to role", role_id=role_id, permission_id=permission_id)

        await self.links.delete(link)
        await self.audit.log(
            action=AuditAction.PERMISSION_UNLINKED,
            entity_type="role",
            entity_id=role_id,
            performed_by=removed_by,
            old_value={"permission_id": permission_id},
        )
