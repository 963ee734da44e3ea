"""Audit log model for permission and role changes."""

from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import JSON, DateTime, ForeignKey, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from parish_authz.models.base import Base, UUIDMixin


class PermissionAuditLog(Base, UUIDMixin):
    """
    Immutable audit trail for the authorization stores.

    Every catalog, assignment and override mutation writes one row.
    """

    __tablename__ = "permission_audit_log"

    # What happened
    action: Mapped[str] = mapped_column(String(50), index=True)  # "role_assigned", "override_granted", ...

    # What was affected
    entity_type: Mapped[str] = mapped_column(String(50))  # "role", "role_assignment", "direct_override", ...
    entity_id: Mapped[str] = mapped_column(String(255), index=True)

    # Who performed the action
    performed_by: Mapped[Optional[UUID]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    performed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        index=True,
    )

    # Change details
    old_value: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    new_value: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)

    # Human-readable summary
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Request context
    request_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    def __repr__(self) -> str:
        return f"<PermissionAuditLog {self.action} {self.entity_type}:{self.entity_id}>"
