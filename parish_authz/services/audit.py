"""Audit service for permission and role changes."""

from typing import Any, Optional
from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from parish_authz.api.middleware.request_id import get_request_id
from parish_authz.models.audit_log import PermissionAuditLog

logger = structlog.get_logger()


class AuditAction:
    """Audit action names."""

    ROLE_CREATED = "role_created"
    ROLE_UPDATED = "role_updated"
    ROLE_DELETED = "role_deleted"
    PERMISSION_CREATED = "permission_created"
    PERMISSION_DEACTIVATED = "permission_deactivated"
    PERMISSION_LINKED = "permission_linked"
    PERMISSION_UNLINKED = "permission_unlinked"
    ROLE_ASSIGNED = "role_assigned"
    ROLE_ASSIGNMENT_REVOKED = "role_assignment_revoked"
    SUB_UNIT_ROLE_ASSIGNED = "sub_unit_role_assigned"
    SUB_UNIT_ASSIGNMENT_REMOVED = "sub_unit_assignment_removed"
    OVERRIDE_GRANTED = "override_granted"
    OVERRIDE_REVOKED = "override_revoked"
    OVERRIDE_REMOVED = "override_removed"
    CREDENTIALS_INVALIDATED = "credentials_invalidated"
    LAPSED_SWEPT = "lapsed_swept"


def compute_changes(old: dict, new: dict) -> dict[str, dict[str, Any]]:
    """
    Compute the differences between two dictionaries.

    Returns a dict of changed fields with old and new values.
    """
    changes = {}
    for key in set(old) | set(new):
        if old.get(key) != new.get(key):
            changes[key] = {"old": old.get(key), "new": new.get(key)}
    return changes


class AuditService:
    """
    Writes PermissionAuditLog rows.

    Entries are flushed, not committed, so they share the transaction of the
    change they describe.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def log(
        self,
        *,
        action: str,
        entity_type: str,
        entity_id: Any,
        performed_by: Optional[UUID] = None,
        old_value: Optional[dict] = None,
        new_value: Optional[dict] = None,
        description: Optional[str] = None,
    ) -> PermissionAuditLog:
        entry = PermissionAuditLog(
            action=action,
            entity_type=entity_type,
            entity_id=str(entity_id),
            performed_by=performed_by,
            old_value=_jsonable(old_value),
            new_value=_jsonable(new_value),
            description=description,
            request_id=get_request_id(),
        )
        self.db.add(entry)
        await self.db.flush()

        logger.info(
            action,
            entity_type=entity_type,
            entity_id=str(entity_id),
            performed_by=str(performed_by) if performed_by else None,
        )
        return entry

    async def list_for_entity(self, entity_type: str, entity_id: Any) -> list[PermissionAuditLog]:
        stmt = (
            select(PermissionAuditLog)
            .where(
                PermissionAuditLog.entity_type == entity_type,
                PermissionAuditLog.entity_id == str(entity_id),
            )
            .order_by(PermissionAuditLog.performed_at)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())


def _jsonable(value: Optional[dict]) -> Optional[dict]:
    """Stringify UUIDs, datetimes and enums so the dict fits a JSON column."""
    if value is None:
        return None
    out = {}
    for key, item in value.items():
        if item is None or isinstance(item, (bool, int, float, str)):
            out[key] = item
        elif hasattr(item, "isoformat"):
            out[key] = item.isoformat()
        elif hasattr(item, "value"):
            out[key] = item.value
        else:
            out[key] = str(item)
    return out
