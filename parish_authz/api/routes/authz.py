"""
Authorization administration routes.

Every route that changes roles, permissions, assignments or overrides uses
the strict gate: the caller's permissions are re-resolved from the stores
and the token snapshot is ignored. Organization-owned targets additionally
require the caller to be in the same organization (or hold the super-role).
"""

from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from parish_authz.api.dependencies.services import (
    get_assignment_service,
    get_catalog_service,
    get_membership_service,
    get_override_service,
    get_permission_resolver,
)
from parish_authz.api.routes.auth import permission_set_response
from parish_authz.core.auth import (
    AuthenticatedPrincipal,
    AuthorizationGate,
    CurrentPrincipal,
    Gate,
    StrictGate,
    require_capability,
    require_same_organization_as_user,
)
from parish_authz.core.errors import NotFound
from parish_authz.models.rbac import Role, RoleScope
from parish_authz.schemas.auth import CapabilityCheckResponse, PermissionSetResponse
from parish_authz.schemas.rbac import (
    OverrideCreate,
    OverrideResponse,
    PermissionCreate,
    PermissionResponse,
    RoleAssignmentCreate,
    RoleAssignmentResponse,
    RoleCreate,
    RolePermissionLink,
    RoleResponse,
    RoleUpdate,
    SubUnitAssignmentCreate,
    SubUnitAssignmentResponse,
)
from parish_authz.schemas.user import MembershipCreate, MembershipResponse, UserResponse
from parish_authz.services.assignments import AssignmentService
from parish_authz.services.catalog import CatalogService
from parish_authz.services.membership import MembershipService
from parish_authz.services.overrides import OverrideService
from parish_authz.services.resolver import PermissionResolver

router = APIRouter()


# ============================================================
# PERMISSIONS
# ============================================================

@router.get("/permissions", response_model=list[PermissionResponse])
async def list_permissions(
    principal: CurrentPrincipal,
    catalog: CatalogService = Depends(get_catalog_service),
):
    """List active permissions."""
    return await catalog.list_permissions()


@router.get("/permissions/modules/{module}", response_model=list[PermissionResponse])
async def list_permissions_by_module(
    module: str,
    principal: CurrentPrincipal,
    catalog: CatalogService = Depends(get_catalog_service),
):
    """List active permissions of one module."""
    return await catalog.list_permissions(module=module)


@router.post("/permissions", response_model=PermissionResponse, status_code=status.HTTP_201_CREATED)
async def create_permission(
    data: PermissionCreate,
    gate: StrictGate,
    catalog: CatalogService = Depends(get_catalog_service),
):
    """
    Add a permission to the catalog.

    The catalog is shared by every organization, so only the super-role can
    extend it. The new permission is linked to no role.
    """
    await gate.require("permissions.manage")
    await gate.require_same_organization(None)
    return await catalog.create_permission(**data.model_dump(), created_by=gate.principal.id)


@router.post("/permissions/{permission_id}/deactivate", response_model=PermissionResponse)
async def deactivate_permission(
    permission_id: UUID,
    gate: StrictGate,
    catalog: CatalogService = Depends(get_catalog_service),
):
    """Deactivate a permission; nobody holds it afterwards."""
    await gate.require("permissions.manage")
    await gate.require_same_organization(None)
    return await catalog.deactivate_permission(permission_id, deactivated_by=gate.principal.id)


# ============================================================
# ROLES
# ============================================================

async def _visible_role(gate: AuthorizationGate, catalog: CatalogService, role_id: UUID) -> Role:
    role = await catalog.get_role(role_id)
    if role.organization_id is not None:
        await gate.require_same_organization(role.organization_id)
    return role


@router.get("/roles", response_model=list[RoleResponse])
async def list_roles(
    gate: Gate,
    organization_id: UUID | None = Query(None),
    include_inactive: bool = Query(False),
    catalog: CatalogService = Depends(get_catalog_service),
):
    """Roles visible to an organization (its own plus global ones)."""
    own_organization_id = gate.principal.snapshot.organization_id
    if organization_id is None:
        organization_id = own_organization_id
    elif organization_id != own_organization_id:
        await gate.require_same_organization(organization_id)
    return await catalog.list_roles(organization_id, include_inactive=include_inactive)


@router.get("/roles/{role_id}", response_model=RoleResponse)
async def get_role(
    role_id: UUID,
    gate: Gate,
    catalog: CatalogService = Depends(get_catalog_service),
):
    """Get a role of the caller's organization, or a global one."""
    return await _visible_role(gate, catalog, role_id)


@router.post("/roles", response_model=RoleResponse, status_code=status.HTTP_201_CREATED)
async def create_role(
    data: RoleCreate,
    gate: StrictGate,
    catalog: CatalogService = Depends(get_catalog_service),
):
    """Create a role. Global roles can only be created by the super-role."""
    await gate.require("roles.create")
    await gate.require_same_organization(data.organization_id)
    return await catalog.create_role(**data.model_dump(), created_by=gate.principal.id)


@router.patch("/roles/{role_id}", response_model=RoleResponse)
async def update_role(
    role_id: UUID,
    data: RoleUpdate,
    gate: StrictGate,
    catalog: CatalogService = Depends(get_catalog_service),
):
    """Update a role. System roles cannot be renamed."""
    await gate.require("roles.update")
    role = await catalog.get_role(role_id)
    await gate.require_same_organization(role.organization_id)
    return await catalog.update_role(
        role_id,
        updated_by=gate.principal.id,
        **data.model_dump(exclude_unset=True),
    )


@router.delete("/roles/{role_id}", response_model=RoleResponse)
async def delete_role(
    role_id: UUID,
    gate: StrictGate,
    catalog: CatalogService = Depends(get_catalog_service),
):
    """Soft-delete a role. System roles cannot be deleted."""
    await gate.require("roles.delete")
    role = await catalog.get_role(role_id)
    await gate.require_same_organization(role.organization_id)
    return await catalog.delete_role(role_id, deleted_by=gate.principal.id)


@router.get("/roles/{role_id}/permissions", response_model=list[PermissionResponse])
async def get_role_permissions(
    role_id: UUID,
    gate: Gate,
    catalog: CatalogService = Depends(get_catalog_service),
):
    """Permissions linked to a role."""
    await _visible_role(gate, catalog, role_id)
    return await catalog.role_permissions(role_id)


@router.post("/roles/{role_id}/permissions", status_code=status.HTTP_201_CREATED)
async def link_role_permission(
    role_id: UUID,
    data: RolePermissionLink,
    gate: StrictGate,
    catalog: CatalogService = Depends(get_catalog_service),
):
    """Link a permission to a role."""
    await gate.require("permissions.manage")
    role = await catalog.get_role(role_id)
    await gate.require_same_organization(role.organization_id)
    link = await catalog.link_permission(role_id, data.permission_id, granted_by=gate.principal.id)
    return {"role_id": link.role_id, "permission_id": link.permission_id}


@router.delete("/roles/{role_id}/permissions/{permission_id}", status_code=status.HTTP_204_NO_CONTENT)
async def unlink_role_permission(
    role_id: UUID,
    permission_id: UUID,
    gate: StrictGate,
    catalog: CatalogService = Depends(get_catalog_service),
):
    """Unlink a permission from a role."""
    await gate.require("permissions.manage")
    role = await catalog.get_role(role_id)
    await gate.require_same_organization(role.organization_id)
    await catalog.unlink_permission(role_id, permission_id, removed_by=gate.principal.id)


@router.get("/roles/{role_id}/users", response_model=list[UserResponse])
async def get_role_users(
    role_id: UUID,
    gate: Gate,
    catalog: CatalogService = Depends(get_catalog_service),
    assignments: AssignmentService = Depends(get_assignment_service),
):
    """Users currently holding a role through a direct assignment."""
    await gate.require("users.view")
    role = await catalog.get_role(role_id)
    if role.organization_id is not None:
        await gate.require_same_organization(role.organization_id)

    users = await assignments.users_with_role(role_id)
    if not await gate.is_same_organization(None):
        # Global roles span organizations; only the super-role sees all holders
        organization_id = (await gate.get_permissions()).organization_id
        users = [u for u in users if u.organization_id == organization_id]
    return users


# ============================================================
# DIRECT ASSIGNMENTS
# ============================================================

@router.get(
    "/users/{user_id}/roles",
    response_model=list[RoleAssignmentResponse],
    dependencies=[
        Depends(require_capability("users.view")),
        Depends(require_same_organization_as_user(strict=False)),
    ],
)
async def list_user_roles(
    user_id: UUID,
    include_inactive: bool = Query(False),
    assignments: AssignmentService = Depends(get_assignment_service),
):
    """A user's role assignments (effective ones unless include_inactive)."""
    return await assignments.list_user_roles(user_id, include_inactive=include_inactive)


@router.post(
    "/users/{user_id}/roles",
    response_model=RoleAssignmentResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_same_organization_as_user())],
)
async def assign_role(
    user_id: UUID,
    data: RoleAssignmentCreate,
    gate: StrictGate,
    assignments: AssignmentService = Depends(get_assignment_service),
    catalog: CatalogService = Depends(get_catalog_service),
):
    """Assign a role to a user. Global roles can only be handed out by the super-role."""
    await gate.require("roles.assign")
    role = await catalog.get_role(data.role_id)
    if role.scope == RoleScope.GLOBAL:
        await gate.require_same_organization(None)
    return await assignments.assign_role(
        user_id,
        data.role_id,
        expires_at=data.expires_at,
        assigned_by=gate.principal.id,
    )


@router.delete("/role-assignments/{assignment_id}", response_model=RoleAssignmentResponse)
async def revoke_role_assignment(
    assignment_id: UUID,
    gate: StrictGate,
    assignments: AssignmentService = Depends(get_assignment_service),
    membership: MembershipService = Depends(get_membership_service),
):
    """Revoke a role assignment. Revoking an inactive one is a no-op."""
    await gate.require("roles.assign")
    assignment = await assignments.assignments.get_by_id(assignment_id)
    if assignment is None:
        raise NotFound("Role assignment not found", assignment_id=assignment_id)
    await gate.require_same_organization(await membership.organization_of(assignment.user_id))
    if assignment.role.scope == RoleScope.GLOBAL:
        await gate.require_same_organization(None)
    return await assignments.revoke_role_assignment(assignment_id, revoked_by=gate.principal.id)


# ============================================================
# SUB-UNIT MEMBERS
# ============================================================

@router.get("/sub-units/{sub_unit_id}/members", response_model=list[MembershipResponse])
async def list_sub_unit_members(
    sub_unit_id: UUID,
    gate: Gate,
    include_inactive: bool = Query(False),
    membership: MembershipService = Depends(get_membership_service),
):
    await gate.require("VIEW_WARDS", sub_unit_id)
    sub_unit = await membership.get_sub_unit(sub_unit_id)
    await gate.require_same_organization(sub_unit.organization_id)
    return await membership.list_members(sub_unit_id, include_inactive=include_inactive)


@router.post(
    "/sub-units/{sub_unit_id}/members",
    response_model=MembershipResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_sub_unit_member(
    sub_unit_id: UUID,
    data: MembershipCreate,
    gate: StrictGate,
    membership: MembershipService = Depends(get_membership_service),
):
    """Add a principal of the same organization to a sub-unit."""
    await gate.require("MANAGE_WARD_MEMBERS", sub_unit_id)
    sub_unit = await membership.get_sub_unit(sub_unit_id)
    await gate.require_same_organization(sub_unit.organization_id)
    return await membership.add_member(sub_unit_id, data.user_id)


@router.delete("/sub-units/{sub_unit_id}/members/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_sub_unit_member(
    sub_unit_id: UUID,
    user_id: UUID,
    gate: StrictGate,
    membership: MembershipService = Depends(get_membership_service),
):
    """End a membership; the member's sub-unit roles stop counting."""
    await gate.require("MANAGE_WARD_MEMBERS", sub_unit_id)
    sub_unit = await membership.get_sub_unit(sub_unit_id)
    await gate.require_same_organization(sub_unit.organization_id)
    await membership.remove_member(sub_unit_id, user_id)


# ============================================================
# SUB-UNIT ASSIGNMENTS
# ============================================================

@router.post(
    "/sub-units/{sub_unit_id}/assignments",
    response_model=SubUnitAssignmentResponse,
    status_code=status.HTTP_201_CREATED,
)
async def assign_sub_unit_role(
    sub_unit_id: UUID,
    data: SubUnitAssignmentCreate,
    gate: StrictGate,
    assignments: AssignmentService = Depends(get_assignment_service),
    membership: MembershipService = Depends(get_membership_service),
):
    """Assign a sub-unit role to a member of the sub-unit."""
    await gate.require("roles.assign", sub_unit_id)
    sub_unit = await membership.get_sub_unit(sub_unit_id)
    await gate.require_same_organization(sub_unit.organization_id)
    return await assignments.assign_sub_unit_role(
        sub_unit_id,
        data.user_id,
        data.role_id,
        is_primary=data.is_primary,
        expires_at=data.expires_at,
        notes=data.notes,
        assigned_by=gate.principal.id,
    )


@router.delete("/sub-unit-assignments/{assignment_id}", response_model=SubUnitAssignmentResponse)
async def remove_sub_unit_assignment(
    assignment_id: UUID,
    gate: StrictGate,
    assignments: AssignmentService = Depends(get_assignment_service),
    membership: MembershipService = Depends(get_membership_service),
):
    """Remove a sub-unit assignment. Idempotent."""
    assignment = await assignments.sub_unit_assignments.get_by_id(assignment_id)
    if assignment is None:
        raise NotFound("Sub-unit assignment not found", assignment_id=assignment_id)
    await gate.require("roles.assign", assignment.sub_unit_id)
    sub_unit = await membership.get_sub_unit(assignment.sub_unit_id)
    await gate.require_same_organization(sub_unit.organization_id)
    return await assignments.remove_sub_unit_assignment(assignment_id, removed_by=gate.principal.id)


# ============================================================
# DIRECT OVERRIDES
# ============================================================

@router.get(
    "/users/{user_id}/overrides",
    response_model=list[OverrideResponse],
    dependencies=[
        Depends(require_capability("users.view")),
        Depends(require_same_organization_as_user(strict=False)),
    ],
)
async def list_overrides(
    user_id: UUID,
    include_inactive: bool = Query(False),
    overrides: OverrideService = Depends(get_override_service),
):
    """A user's direct overrides."""
    return await overrides.list_overrides(user_id, include_inactive=include_inactive)


@router.post(
    "/users/{user_id}/permissions/grant",
    response_model=OverrideResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_same_organization_as_user())],
)
async def grant_permission(
    user_id: UUID,
    data: OverrideCreate,
    principal: AuthenticatedPrincipal = Depends(require_capability("permissions.manage", strict=True)),
    overrides: OverrideService = Depends(get_override_service),
):
    """Grant one permission to a user directly."""
    return await overrides.grant_permission(
        user_id,
        data.permission_code,
        expires_at=data.expires_at,
        reason=data.reason,
        assigned_by=principal.id,
    )


@router.post(
    "/users/{user_id}/permissions/revoke",
    response_model=OverrideResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_same_organization_as_user())],
)
async def revoke_permission(
    user_id: UUID,
    data: OverrideCreate,
    principal: AuthenticatedPrincipal = Depends(require_capability("permissions.manage", strict=True)),
    overrides: OverrideService = Depends(get_override_service),
):
    """Revoke one permission from a user, whatever else grants it."""
    return await overrides.revoke_permission(
        user_id,
        data.permission_code,
        expires_at=data.expires_at,
        reason=data.reason,
        assigned_by=principal.id,
    )


@router.delete("/overrides/{override_id}", response_model=OverrideResponse)
async def remove_override(
    override_id: UUID,
    gate: StrictGate,
    overrides: OverrideService = Depends(get_override_service),
    membership: MembershipService = Depends(get_membership_service),
):
    """Remove a direct GRANT or REVOKE. Idempotent."""
    await gate.require("permissions.manage")
    override = await overrides.overrides.get_by_id(override_id)
    if override is None:
        raise NotFound("Override not found", override_id=override_id)
    await gate.require_same_organization(await membership.organization_of(override.user_id))
    return await overrides.remove_override(override_id, removed_by=gate.principal.id)


# ============================================================
# INTROSPECTION
# ============================================================

@router.get(
    "/users/{user_id}/permissions",
    response_model=PermissionSetResponse,
    dependencies=[
        Depends(require_capability("users.view")),
        Depends(require_same_organization_as_user(strict=False)),
    ],
)
async def get_user_permissions(
    user_id: UUID,
    resolver: PermissionResolver = Depends(get_permission_resolver),
):
    """A user's permissions, resolved from the stores now."""
    return permission_set_response(await resolver.resolve(user_id))


@router.get(
    "/users/{user_id}/check",
    response_model=CapabilityCheckResponse,
    dependencies=[
        Depends(require_capability("users.view")),
        Depends(require_same_organization_as_user(strict=False)),
    ],
)
async def check_user_capability(
    user_id: UUID,
    code: str = Query(..., min_length=1),
    sub_unit_id: UUID | None = Query(None),
    resolver: PermissionResolver = Depends(get_permission_resolver),
):
    """Whether a user holds one capability (optionally within a sub-unit)."""
    allowed = await resolver.has_capability(user_id, code, sub_unit_id=sub_unit_id)
    return CapabilityCheckResponse(
        user_id=user_id,
        code=code,
        sub_unit_id=sub_unit_id,
        allowed=allowed,
    )
