"""
Database models.
"""

from .base import (
    Base,
    TimestampMixin,
    UUIDMixin,
    StandardMixin,
    TimeBoundEdgeMixin,
)
from .org import Organization, SubUnit, SubUnitMembership
from .user import User
from .rbac import (
    Permission,
    Role,
    RoleScope,
    RolePermission,
    RoleAssignment,
    SubUnitAssignment,
    DirectOverride,
    OverrideKind,
)
from .audit_log import PermissionAuditLog

__all__ = [
    # Base
    "Base",
    # Mixins
    "TimestampMixin",
    "UUIDMixin",
    "StandardMixin",
    "TimeBoundEdgeMixin",
    # Membership
    "Organization",
    "SubUnit",
    "SubUnitMembership",
    "User",
    # Catalog
    "Permission",
    "Role",
    "RoleScope",
    "RolePermission",
    # Edges
    "RoleAssignment",
    "SubUnitAssignment",
    "DirectOverride",
    "OverrideKind",
    # Audit
    "PermissionAuditLog",
]
