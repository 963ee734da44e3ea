"""
Principal and membership schemas.
"""

from datetime import datetime
from uuid import UUID
from pydantic import BaseModel, EmailStr, ConfigDict


class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    email: EmailStr
    name: str
    organization_id: UUID | None = None
    is_active: bool
    last_login_at: datetime | None = None
    credentials_valid_after: datetime | None = None


class MembershipCreate(BaseModel):
    user_id: UUID


class MembershipResponse(BaseModel):
    """A principal's membership of one sub-unit (ward)."""
    model_config = ConfigDict(from_attributes=True)

    sub_unit_id: UUID
    user_id: UUID
    is_active: bool
    joined_at: datetime
    left_at: datetime | None = None
