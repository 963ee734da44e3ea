"""
Base model classes and mixins.

Standard mixins:
- TimestampMixin: created_at, updated_at (always use)
- UUIDMixin: UUID primary key
- TimeBoundEdgeMixin: active flag + optional expiry for grant edges
"""

from datetime import datetime
from typing import Any, Optional
from uuid import UUID as PyUUID, uuid4
from sqlalchemy import Boolean, DateTime, ForeignKey, Uuid, func
from sqlalchemy.orm import DeclarativeBase, Mapped, declared_attr, mapped_column

from parish_authz.utils.timezone import has_lapsed, to_utc, utc_now


class Base(DeclarativeBase):
    """Base class for all models."""

    # Common type annotations - all datetimes are timezone-aware
    type_annotation_map = {
        datetime: DateTime(timezone=True),
        PyUUID: Uuid(as_uuid=True),
    }

    def to_dict(self) -> dict[str, Any]:
        """Convert model to dictionary."""
        return {c.name: getattr(self, c.name) for c in self.__table__.columns}


# ============================================================
# TIMESTAMP MIXINS
# ============================================================

class TimestampMixin:
    """
    Mixin for created_at and updated_at timestamps.

    All timestamps are stored in UTC (timezone-aware).
    """

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


# ============================================================
# PRIMARY KEY MIXIN
# ============================================================

class UUIDMixin:
    """
    Mixin for UUID primary key.

    Uses UUID v4 (random) for primary keys.
    """

    id: Mapped[PyUUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )


class StandardMixin(UUIDMixin, TimestampMixin):
    """
    Standard mixin combining UUID + timestamps.

    Provides:
        - id: UUID primary key
        - created_at: When created (UTC)
        - updated_at: When last modified (UTC)
    """
    pass


# ============================================================
# GRANT EDGE MIXIN
# ============================================================

class TimeBoundEdgeMixin:
    """
    Mixin for assignment/override edges that can lapse.

    An edge counts at instant T only when::

        is_active AND (expires_at IS NULL OR expires_at > T)

    Lapse is computed on read. Nothing has to rewrite ``is_active`` when
    ``expires_at`` passes for the edge to stop counting.

    Usage:
        class RoleAssignment(Base, UUIDMixin, TimeBoundEdgeMixin):
            ...

        stmt = select(RoleAssignment).where(RoleAssignment.effective_at(now))
    """

    assigned_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        nullable=False,
    )
    expires_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    @declared_attr
    def assigned_by(cls) -> Mapped[Optional[PyUUID]]:
        return mapped_column(
            Uuid(as_uuid=True),
            ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        )

    @classmethod
    def effective_at(cls, at: datetime):
        """SQL predicate: edge counts at instant ``at``."""
        return cls.is_active.is_(True) & (
            cls.expires_at.is_(None) | (cls.expires_at > to_utc(at))
        )

    def is_effective(self, at: datetime | None = None) -> bool:
        """Python-side twin of ``effective_at``."""
        at = to_utc(at or utc_now())
        return self.is_active and not has_lapsed(self.expires_at, at)
