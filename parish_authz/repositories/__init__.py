"""
Repository pattern for data access.
"""

from parish_authz.repositories.base import BaseRepository
from parish_authz.repositories.catalog import (
    PermissionRepository,
    RoleRepository,
    RolePermissionRepository,
)
from parish_authz.repositories.edges import (
    RoleAssignmentRepository,
    SubUnitAssignmentRepository,
    DirectOverrideRepository,
)

__all__ = [
    "BaseRepository",
    "PermissionRepository",
    "RoleRepository",
    "RolePermissionRepository",
    "RoleAssignmentRepository",
    "SubUnitAssignmentRepository",
    "DirectOverrideRepository",
]
