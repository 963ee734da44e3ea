"""
Authorization gate - main facade for authorization.

Usage:
    # In route handlers:
    async def handler(gate: StrictGate):
        await gate.require("roles.assign")
        await gate.require_same_organization(target.organization_id)
"""

from uuid import UUID

import structlog

from parish_authz.core.config import settings
from parish_authz.core.errors import Forbidden
from parish_authz.services.resolver import ResolvedPermissions

from .interfaces import AuthenticatedPrincipal, PolicyDecision, PolicyEngine

logger = structlog.get_logger()


class AuthorizationGate:
    """
    Request-time enforcement point.

    Every method is side-effect free and may be called any number of times
    per request. Denials raise ``Forbidden``, whose response never names the
    missing capability; the reason is logged server-side only.
    """

    def __init__(self, principal: AuthenticatedPrincipal, policy_engine: PolicyEngine):
        self.principal = principal
        self.policy_engine = policy_engine

    async def authorize(self, code: str, sub_unit_id: UUID | None = None) -> PolicyDecision:
        """Evaluate without raising."""
        return await self.policy_engine.evaluate(self.principal, code, sub_unit_id)

    async def can(self, code: str, sub_unit_id: UUID | None = None) -> bool:
        return (await self.authorize(code, sub_unit_id)).allowed

    async def require(self, code: str, sub_unit_id: UUID | None = None) -> None:
        """
        Require a capability or raise.

        Raises:
            Forbidden: the capability is not held
        """
        decision = await self.authorize(code, sub_unit_id)
        if not decision.allowed:
            logger.info(
                "authorization_denied",
                user_id=str(self.principal.id),
                code=code,
                **decision.metadata,
            )
            raise Forbidden(decision.reason or "Permission denied", code=code)

    async def get_permissions(self) -> ResolvedPermissions:
        return await self.policy_engine.get_permissions(self.principal)

    async def is_same_organization(self, organization_id: UUID | None) -> bool:
        """
        True when the caller belongs to ``organization_id`` or holds the
        global super-role as an effective GLOBAL role.
        """
        permissions = await self.get_permissions()
        if settings.auth.super_role_code in permissions.global_role_codes:
            return True
        return organization_id is not None and permissions.organization_id == organization_id

    async def require_same_organization(self, organization_id: UUID | None) -> None:
        """
        Raises:
            Forbidden: the caller belongs to another organization
        """
        if not await self.is_same_organization(organization_id):
            logger.info(
                "organization_denied",
                user_id=str(self.principal.id),
                target_organization_id=str(organization_id) if organization_id else None,
                engine=self.policy_engine.name,
            )
            raise Forbidden("Organization mismatch", organization_id=organization_id)
