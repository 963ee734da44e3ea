"""
Role, permission, assignment and override schemas.
"""

from datetime import datetime
from uuid import UUID
from pydantic import BaseModel, ConfigDict, Field, model_validator

from parish_authz.models.rbac import OverrideKind, RoleScope


# ============================================================
# CATALOG
# ============================================================

class PermissionCreate(BaseModel):
    """Permission creation request."""
    code: str = Field(min_length=1, max_length=100, pattern=r"^[A-Za-z0-9_.:-]+$")
    name: str = Field(min_length=1, max_length=255)
    module: str = Field(min_length=1, max_length=50)
    action: str = Field(min_length=1, max_length=50)
    description: str | None = None


class PermissionResponse(BaseModel):
    """Permission response schema."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    code: str
    name: str
    module: str
    action: str
    description: str | None = None
    is_active: bool


class RoleCreate(BaseModel):
    """Role creation request."""
    code: str = Field(min_length=1, max_length=100)
    name: str = Field(min_length=1, max_length=255)
    scope: RoleScope
    organization_id: UUID | None = None
    priority: int = 0
    description: str | None = None


class RoleUpdate(BaseModel):
    """Role update request. Only set fields are applied."""
    code: str | None = Field(None, min_length=1, max_length=100)
    name: str | None = Field(None, min_length=1, max_length=255)
    priority: int | None = None
    description: str | None = None


class RoleResponse(BaseModel):
    """Role response schema."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    code: str
    name: str
    description: str | None = None
    priority: int
    scope: RoleScope
    is_system: bool
    is_active: bool
    organization_id: UUID | None = None
    is_sub_unit_role: bool


class RolePermissionLink(BaseModel):
    """Link a permission to a role."""
    permission_id: UUID


# ============================================================
# ASSIGNMENTS
# ============================================================

class RoleAssignmentCreate(BaseModel):
    """Direct role assignment request."""
    role_id: UUID
    expires_at: datetime | None = None


class RoleAssignmentResponse(BaseModel):
    """Direct role assignment response."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    user_id: UUID
    role_id: UUID
    assigned_by: UUID | None = None
    assigned_at: datetime
    expires_at: datetime | None = None
    is_active: bool
    revoked_at: datetime | None = None


class SubUnitAssignmentCreate(BaseModel):
    """Sub-unit role assignment request."""
    user_id: UUID
    role_id: UUID
    is_primary: bool = False
    expires_at: datetime | None = None
    notes: str | None = None


class SubUnitAssignmentResponse(BaseModel):
    """Sub-unit role assignment response."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    sub_unit_id: UUID
    user_id: UUID
    role_id: UUID
    is_primary: bool
    notes: str | None = None
    assigned_by: UUID | None = None
    assigned_at: datetime
    expires_at: datetime | None = None
    is_active: bool


# ============================================================
# OVERRIDES
# ============================================================

class OverrideCreate(BaseModel):
    """Direct GRANT or REVOKE request."""
    permission_code: str = Field(min_length=1, max_length=100)
    expires_at: datetime | None = None
    reason: str | None = Field(None, max_length=1000)

    @model_validator(mode="after")
    def strip_reason(self) -> "OverrideCreate":
        if self.reason is not None:
            self.reason = self.reason.strip() or None
        return self


class OverrideResponse(BaseModel):
    """Direct override response."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    user_id: UUID
    permission_id: UUID
    kind: OverrideKind
    reason: str | None = None
    assigned_by: UUID | None = None
    assigned_at: datetime
    expires_at: datetime | None = None
    is_active: bool
