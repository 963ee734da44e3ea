"""
Service dependencies.
"""

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from .database import get_db
from parish_authz.services.assignments import AssignmentService
from parish_authz.services.auth import AuthService
from parish_authz.services.catalog import CatalogService
from parish_authz.services.membership import MembershipService
from parish_authz.services.overrides import OverrideService
from parish_authz.services.resolver import PermissionResolver


async def get_auth_service(db: AsyncSession = Depends(get_db)) -> AuthService:
    """Get auth service instance (for login/refresh)."""
    return AuthService(db)


async def get_catalog_service(db: AsyncSession = Depends(get_db)) -> CatalogService:
    return CatalogService(db)


async def get_assignment_service(db: AsyncSession = Depends(get_db)) -> AssignmentService:
    return AssignmentService(db)


async def get_override_service(db: AsyncSession = Depends(get_db)) -> OverrideService:
    return OverrideService(db)


async def get_membership_service(db: AsyncSession = Depends(get_db)) -> MembershipService:
    return MembershipService(db)


async def get_permission_resolver(db: AsyncSession = Depends(get_db)) -> PermissionResolver:
    return PermissionResolver(db)
