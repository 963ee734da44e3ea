"""
Authorization interfaces - Core abstractions.

A policy engine answers one question: does this principal hold this
capability (optionally in the context of one sub-unit)? Two engines exist:

- snapshot: reads the permission set embedded in the access token (fast path)
- strict: re-resolves from the stores on every call (administrative path)

Route code depends on these interfaces and on the gate, never on an engine.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any
from uuid import UUID

from parish_authz.models.user import User
from parish_authz.services.credentials import PermissionSnapshot
from parish_authz.services.resolver import ResolvedPermissions


# ============================================================
# PRINCIPAL
# ============================================================

@dataclass(frozen=True)
class AuthenticatedPrincipal:
    """The verified caller: its user row and the token it presented."""

    user: User
    snapshot: PermissionSnapshot

    @property
    def id(self) -> UUID:
        return self.user.id


# ============================================================
# POLICY DECISION
# ============================================================

@dataclass
class PolicyDecision:
    """
    Result of a policy evaluation.

    Attributes:
        allowed: Whether the action is permitted
        reason: Explanation for server-side logs, never returned to the caller
        metadata: Additional data (engine name, sub-unit, ...)
    """
    allowed: bool
    reason: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def allow(cls, reason: str | None = None, **metadata: Any) -> "PolicyDecision":
        return cls(allowed=True, reason=reason, metadata=metadata)

    @classmethod
    def deny(cls, reason: str = "Permission denied", **metadata: Any) -> "PolicyDecision":
        return cls(allowed=False, reason=reason, metadata=metadata)


# ============================================================
# POLICY ENGINE
# ============================================================

class PolicyEngine(ABC):
    """
    Abstract policy engine interface.

    Implementations:
    - SnapshotPolicyEngine: embedded token snapshot
    - StrictPolicyEngine: fresh resolution from the stores
    """

    name: str = "abstract"

    @abstractmethod
    async def get_permissions(self, principal: AuthenticatedPrincipal) -> ResolvedPermissions:
        """Permission picture the engine uses for this principal."""

    async def evaluate(
        self,
        principal: AuthenticatedPrincipal,
        code: str,
        sub_unit_id: UUID | None = None,
    ) -> PolicyDecision:
        """
        Evaluate if the principal holds ``code``.

        With ``sub_unit_id`` only base permissions and that sub-unit's
        permissions count; without it, every held permission counts.
        """
        permissions = await self.get_permissions(principal)
        if permissions.has(code, sub_unit_id):
            return PolicyDecision.allow("Has permission", engine=self.name)
        return PolicyDecision.deny(
            f"Missing permission {code}",
            engine=self.name,
            sub_unit_id=str(sub_unit_id) if sub_unit_id else None,
        )
