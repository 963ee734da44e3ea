"""
API routes aggregation.
"""

from fastapi import APIRouter

from .auth import router as auth_router
from .authz import router as authz_router

router = APIRouter()

router.include_router(auth_router, prefix="/auth", tags=["auth"])
router.include_router(authz_router, prefix="/authz", tags=["authz"])
