"""
Principal model.
"""

from datetime import datetime
from uuid import UUID, uuid4
from sqlalchemy import String, Boolean, DateTime, ForeignKey, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from parish_authz.utils.timezone import to_utc

from .base import Base, TimestampMixin


class User(Base, TimestampMixin):
    """
    A principal that can log in and hold roles.

    Every principal belongs to at most one primary organization (parish).
    Global staff carry ``organization_id = None``.
    """

    __tablename__ = "users"

    id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )
    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
        index=True,
    )
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    organization_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("organizations.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    # Status
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    # Timestamps
    last_login_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    # Credentials issued before this instant are rejected
    credentials_valid_after: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    organization: Mapped["Organization | None"] = relationship(
        "Organization",
        back_populates="users",
    )

    def accepts_credentials_issued_at(self, issued_at: datetime) -> bool:
        """False for credentials issued before the last invalidation."""
        if self.credentials_valid_after is None:
            return True
        return to_utc(issued_at) >= to_utc(self.credentials_valid_after)

    def __repr__(self) -> str:
        return f"<User {self.email}>"


from .org import Organization  # noqa: E402
