"""
Policy engines for authorization.

Available engines:
- snapshot: permission set embedded in the access token (default)
- strict: fresh resolution from the stores
"""

from .snapshot import SnapshotPolicyEngine
from .strict import StrictPolicyEngine

__all__ = ["SnapshotPolicyEngine", "StrictPolicyEngine"]
