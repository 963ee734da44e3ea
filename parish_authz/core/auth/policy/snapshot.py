"""
Snapshot policy engine - DEFAULT implementation.

Reads the permission set embedded in the caller's access token. No store
access, so it may be up to one token lifetime stale.
"""

from typing import Any

from parish_authz.services.resolver import ResolvedPermissions

from ..interfaces import AuthenticatedPrincipal, PolicyEngine
from ..registry import AuthRegistry


@AuthRegistry.policy_engine("snapshot")
class SnapshotPolicyEngine(PolicyEngine):
    """Authorize from the verified token snapshot."""

    def __init__(self, **kwargs: Any):
        pass

    async def get_permissions(self, principal: AuthenticatedPrincipal) -> ResolvedPermissions:
        permissions = principal.snapshot.permissions
        if permissions is None:
            # Only access tokens carry a snapshot
            return ResolvedPermissions(
                principal_id=principal.id,
                organization_id=None,
                evaluated_at=principal.snapshot.issued_at,
            )
        return permissions
