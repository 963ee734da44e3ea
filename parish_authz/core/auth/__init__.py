"""
Authorization module.

Fast path (token snapshot):
---------------------------
    from parish_authz.core.auth import require_capability

    @router.get("/events", dependencies=[Depends(require_capability("events.view"))])
    async def list_events():
        ...

Sub-unit context:
-----------------
    @router.get("/wards/{ward_id}/members",
                dependencies=[Depends(require_capability("wards.view", sub_unit_param="ward_id"))])

Strict path (administrative endpoints):
---------------------------------------
    @router.post("/users/{user_id}/roles")
    async def assign(user_id: UUID, gate: StrictGate):
        await gate.require("roles.assign")
        ...

Same-organization check:
------------------------
    await gate.require_same_organization(target_user.organization_id)

Holders of the configured super-role (AUTH_SUPER_ROLE_CODE) as an effective
GLOBAL role pass the organization check. No other check has a bypass.
"""

# Core interfaces
from .interfaces import (
    AuthenticatedPrincipal,
    PolicyDecision,
    PolicyEngine,
)

# Registry
from .registry import AuthRegistry

# Gate (main facade)
from .service import AuthorizationGate

# Dependencies (what you'll use in routes)
from .dependencies import (
    CurrentPrincipal,
    Gate,
    StrictGate,
    get_current_principal,
    get_authorization_gate,
    get_strict_authorization_gate,
    require_capability,
    require_same_organization,
    require_same_organization_as_user,
)

# Default implementations (auto-registered)
from .policy import SnapshotPolicyEngine, StrictPolicyEngine

__all__ = [
    # Interfaces
    "AuthenticatedPrincipal",
    "PolicyDecision",
    "PolicyEngine",
    # Registry
    "AuthRegistry",
    # Gate
    "AuthorizationGate",
    # Dependencies
    "CurrentPrincipal",
    "Gate",
    "StrictGate",
    "get_current_principal",
    "get_authorization_gate",
    "get_strict_authorization_gate",
    "require_capability",
    "require_same_organization",
    "require_same_organization_as_user",
    # Default implementations
    "SnapshotPolicyEngine",
    "StrictPolicyEngine",
]
