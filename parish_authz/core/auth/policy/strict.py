"""
Strict policy engine.

Ignores the token snapshot and resolves from the stores. Used by every
endpoint that changes roles, permissions or overrides, so a token captured
before a revoke cannot be used to undo it.
"""

from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from parish_authz.services.resolver import PermissionResolver, ResolvedPermissions

from ..interfaces import AuthenticatedPrincipal, PolicyEngine
from ..registry import AuthRegistry


@AuthRegistry.policy_engine("strict")
class StrictPolicyEngine(PolicyEngine):
    """Authorize from a fresh resolution."""

    def __init__(self, db: AsyncSession, **kwargs: Any):
        self.resolver = PermissionResolver(db)
        self._resolved: dict[Any, ResolvedPermissions] = {}

    async def get_permissions(self, principal: AuthenticatedPrincipal) -> ResolvedPermissions:
        # One resolution per engine instance (one request)
        if principal.id not in self._resolved:
            self._resolved[principal.id] = await self.resolver.resolve(principal.id)
        return self._resolved[principal.id]
