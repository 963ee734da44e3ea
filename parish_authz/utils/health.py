"""
Readiness checks.

``/health`` only says the process is up. ``/health/detailed`` also checks
that the store answers and that the permission catalog has been seeded; a
deployment with an empty catalog denies every request.
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

import structlog
from sqlalchemy import func, select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from parish_authz.models.rbac import Permission, Role, RoleScope

logger = structlog.get_logger()

SLOW_QUERY_MS = 100


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


@dataclass
class ComponentHealth:
    name: str
    status: HealthStatus
    latency_ms: Optional[float] = None
    message: Optional[str] = None


@dataclass
class HealthReport:
    version: str
    environment: str
    components: list[ComponentHealth] = field(default_factory=list)

    @property
    def status(self) -> HealthStatus:
        statuses = {c.status for c in self.components}
        for status in (HealthStatus.UNHEALTHY, HealthStatus.DEGRADED):
            if status in statuses:
                return status
        return HealthStatus.HEALTHY

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "version": self.version,
            "environment": self.environment,
            "components": {
                c.name: {
                    "status": c.status.value,
                    "latency_ms": c.latency_ms,
                    "message": c.message,
                }
                for c in self.components
            },
        }


async def check_database(db: AsyncSession) -> ComponentHealth:
    start = time.perf_counter()
    try:
        await db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.error("database_health_check_failed", error=str(e))
        return ComponentHealth(name="database", status=HealthStatus.UNHEALTHY, message=str(e)[:100])

    latency = round((time.perf_counter() - start) * 1000, 2)
    slow = latency >= SLOW_QUERY_MS
    return ComponentHealth(
        name="database",
        status=HealthStatus.DEGRADED if slow else HealthStatus.HEALTHY,
        latency_ms=latency,
        message="Slow response" if slow else "Connected",
    )


async def check_catalog(db: AsyncSession, super_role_code: str) -> ComponentHealth:
    """Degraded when no active permissions or no global super role exist."""
    try:
        permissions = await db.scalar(
            select(func.count()).select_from(Permission).where(Permission.is_active.is_(True))
        )
        super_roles = await db.scalar(
            select(func.count()).select_from(Role).where(
                Role.scope == RoleScope.GLOBAL,
                Role.code == super_role_code,
                Role.is_active.is_(True),
            )
        )
    except SQLAlchemyError as e:
        logger.error("catalog_health_check_failed", error=str(e))
        return ComponentHealth(name="catalog", status=HealthStatus.UNHEALTHY, message=str(e)[:100])

    if not permissions or not super_roles:
        return ComponentHealth(
            name="catalog",
            status=HealthStatus.DEGRADED,
            message=f"{permissions} permissions, {super_roles} super roles; run the seed command",
        )
    return ComponentHealth(name="catalog", status=HealthStatus.HEALTHY, message=f"{permissions} permissions")


async def run_checks(db: AsyncSession, version: str, environment: str, super_role_code: str) -> HealthReport:
    report = HealthReport(version=version, environment=environment)
    report.components.append(await check_database(db))
    if report.status != HealthStatus.UNHEALTHY:
        report.components.append(await check_catalog(db, super_role_code))
    return report
