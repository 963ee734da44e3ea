"""
RBAC Models - Roles, Permissions, Assignments and Overrides.

The catalog:
- Permission: one capability code (``families.manage``) owned by a module
- Role: named bundle of permissions, scoped GLOBAL / ORGANIZATION / SUB_UNIT
- RolePermission: role -> permission edge (no expiry)

The grant edges (all use TimeBoundEdgeMixin):
- RoleAssignment: principal -> role, organization-wide or global
- SubUnitAssignment: member -> role within one sub-unit (ward)
- DirectOverride: principal -> permission, GRANT or REVOKE

Only one *active* edge may exist per key. This is enforced with partial
unique indexes so the database is the authority even under concurrent
writers; a revoked edge frees its slot for a new assignment.

Usage:
    role = Role(code="CHURCH_ADMIN", name="Church Admin",
                scope=RoleScope.ORGANIZATION, organization_id=org.id)
    perm = Permission(code="families.manage", name="Manage families",
                      module="families", action="manage")
    RolePermission(role_id=role.id, permission_id=perm.id)
    RoleAssignment(user_id=user.id, role_id=role.id)
"""

import enum
from datetime import datetime
from uuid import UUID
from sqlalchemy import (
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from parish_authz.utils.timezone import utc_now

from .base import Base, TimestampMixin, TimeBoundEdgeMixin, UUIDMixin


class RoleScope(str, enum.Enum):
    GLOBAL = "GLOBAL"
    ORGANIZATION = "ORGANIZATION"
    SUB_UNIT = "SUB_UNIT"


class OverrideKind(str, enum.Enum):
    GRANT = "GRANT"
    REVOKE = "REVOKE"


def _active_only():
    """Partial index predicate, one spelling per dialect."""
    return {
        "postgresql_where": text("is_active"),
        "sqlite_where": text("is_active = 1"),
    }


class Permission(Base, UUIDMixin, TimestampMixin):
    """
    Permission definition.

    Permissions are created by seeding or by a ``permissions.manage`` holder
    and are never mutated afterwards except for deactivation. An inactive
    permission is dropped from every resolved set.
    """

    __tablename__ = "permissions"

    code: Mapped[str] = mapped_column(String(100), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    module: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<Permission {self.code}>"


class Role(Base, UUIDMixin, TimestampMixin):
    """
    Role definition.

    ``priority`` orders roles for display only; it never affects resolution.
    GLOBAL roles have no owning organization, every other scope has one.
    """

    __tablename__ = "roles"
    __table_args__ = (
        UniqueConstraint("organization_id", "code", name="uq_role_org_code"),
        # NULL organization ids never collide in a unique constraint
        Index(
            "uq_role_global_code",
            "code",
            unique=True,
            postgresql_where=text("organization_id IS NULL"),
            sqlite_where=text("organization_id IS NULL"),
        ),
    )

    code: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    priority: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    scope: Mapped[RoleScope] = mapped_column(
        Enum(RoleScope, name="role_scope", native_enum=False, length=20),
        nullable=False,
    )
    is_system: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    organization_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )

    permission_links: Mapped[list["RolePermission"]] = relationship(
        "RolePermission",
        back_populates="role",
        cascade="all, delete-orphan",
    )

    @property
    def is_sub_unit_role(self) -> bool:
        return self.scope == RoleScope.SUB_UNIT

    @property
    def is_global(self) -> bool:
        return self.scope == RoleScope.GLOBAL

    def __repr__(self) -> str:
        return f"<Role {self.code} ({self.scope.value})>"


class RolePermission(Base):
    """Role -> permission edge. Durable until explicitly unlinked."""

    __tablename__ = "role_permissions"

    role_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("roles.id", ondelete="CASCADE"),
        primary_key=True,
    )
    permission_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("permissions.id", ondelete="CASCADE"),
        primary_key=True,
    )
    granted_by: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    granted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        nullable=False,
    )

    role: Mapped["Role"] = relationship("Role", back_populates="permission_links")
    permission: Mapped["Permission"] = relationship("Permission")

    def __repr__(self) -> str:
        return f"<RolePermission role={self.role_id} permission={self.permission_id}>"


class RoleAssignment(Base, UUIDMixin, TimeBoundEdgeMixin):
    """
    Direct user -> role assignment (organization-wide or global).

    Examples:
        RoleAssignment(user_id=user.id, role_id=admin.id)

        # Temporary role
        RoleAssignment(user_id=user.id, role_id=approver.id,
                       expires_at=datetime(2026, 12, 31, tzinfo=UTC))
    """

    __tablename__ = "role_assignments"
    __table_args__ = (
        Index(
            "uq_role_assignment_active",
            "user_id",
            "role_id",
            unique=True,
            **_active_only(),
        ),
    )

    user_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    role_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("roles.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    revoked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    revoked_by: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )

    role: Mapped["Role"] = relationship("Role", lazy="joined")

    def __repr__(self) -> str:
        return f"<RoleAssignment user={self.user_id} role={self.role_id}>"


class SubUnitAssignment(Base, UUIDMixin, TimeBoundEdgeMixin):
    """
    Member -> role assignment bound to one sub-unit.

    A sibling of RoleAssignment, not a specialisation of it; the two are
    merged only when the resolver builds the role set.
    """

    __tablename__ = "sub_unit_assignments"
    __table_args__ = (
        Index(
            "uq_sub_unit_assignment_active",
            "sub_unit_id",
            "user_id",
            "role_id",
            unique=True,
            **_active_only(),
        ),
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
    role_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("roles.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    is_primary: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    revoked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    revoked_by: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )

    role: Mapped["Role"] = relationship("Role", lazy="joined")

    def __repr__(self) -> str:
        return (
            f"<SubUnitAssignment sub_unit={self.sub_unit_id} "
            f"user={self.user_id} role={self.role_id}>"
        )


class DirectOverride(Base, UUIDMixin, TimeBoundEdgeMixin):
    """
    Per-user permission exception.

    GRANT adds a permission regardless of roles; REVOKE removes it
    regardless of roles and grants. An active GRANT and an active REVOKE
    for the same permission can coexist; the REVOKE wins.
    """

    __tablename__ = "direct_overrides"
    __table_args__ = (
        Index(
            "uq_direct_override_active",
            "user_id",
            "permission_id",
            "kind",
            unique=True,
            **_active_only(),
        ),
    )

    user_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    permission_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("permissions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    kind: Mapped[OverrideKind] = mapped_column(
        Enum(OverrideKind, name="override_kind", native_enum=False, length=10),
        nullable=False,
    )
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    permission: Mapped["Permission"] = relationship("Permission", lazy="joined")

    def __repr__(self) -> str:
        return f"<DirectOverride {self.kind.value} user={self.user_id} permission={self.permission_id}>"
