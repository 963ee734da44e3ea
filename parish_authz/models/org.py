"""
Organization models.

An Organization is a parish. A SubUnit is a subdivision of one organization
(a ward) with its own role assignments; SubUnitMembership records which
users currently belong to which sub-unit.
"""

from datetime import datetime
from uuid import UUID, uuid4
from sqlalchemy import Boolean, DateTime, ForeignKey, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from parish_authz.utils.timezone import utc_now

from .base import Base, TimestampMixin


class Organization(Base, TimestampMixin):
    """Organization (parish) model."""

    __tablename__ = "organizations"

    id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(
        String(100),
        unique=True,
        nullable=False,
        index=True,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    # Relationships
    users: Mapped[list["User"]] = relationship(
        "User",
        back_populates="organization",
    )
    sub_units: Mapped[list["SubUnit"]] = relationship(
        "SubUnit",
        back_populates="organization",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<Organization {self.slug}>"


class SubUnit(Base, TimestampMixin):
    """Sub-unit (ward) within an organization."""

    __tablename__ = "sub_units"

    id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )
    organization_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    organization: Mapped["Organization"] = relationship(
        "Organization",
        back_populates="sub_units",
    )

    def __repr__(self) -> str:
        return f"<SubUnit {self.name} org={self.organization_id}>"


class SubUnitMembership(Base, TimestampMixin):
    """A user's membership of a sub-unit."""

    __tablename__ = "sub_unit_memberships"
    __table_args__ = (
        UniqueConstraint("sub_unit_id", "user_id", name="uq_sub_unit_membership"),
    )

    id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )
    sub_unit_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("sub_units.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    joined_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
    )
    left_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<SubUnitMembership sub_unit={self.sub_unit_id} user={self.user_id}>"


# Import at bottom to avoid circular imports
from .user import User  # noqa: E402
