"""
Authentication schemas.
"""

from datetime import datetime
from uuid import UUID
from pydantic import BaseModel

from .user import UserResponse


class TokenResponse(BaseModel):
    """Token pair response."""
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int  # Access token lifetime in seconds
    expires_at: datetime


class RefreshTokenRequest(BaseModel):
    """Refresh token request."""
    refresh_token: str


class MeResponse(BaseModel):
    """Identity plus the permission snapshot carried by the presented token."""
    user: UserResponse
    organization_id: UUID | None = None
    permissions: list[str]
    sub_units: dict[UUID, list[str]] = {}
    global_roles: list[str] = []
    token_issued_at: datetime
    token_expires_at: datetime


class PermissionSetResponse(BaseModel):
    """Freshly resolved permissions for a principal."""
    user_id: UUID
    organization_id: UUID | None = None
    permissions: list[str]  # Effective set: base plus every sub-unit
    base: list[str]
    sub_units: dict[UUID, list[str]] = {}
    global_roles: list[str] = []
    evaluated_at: datetime


class CapabilityCheckResponse(BaseModel):
    """Result of a single capability check."""
    user_id: UUID
    code: str
    sub_unit_id: UUID | None = None
    allowed: bool
