"""
Snapshot issuer.

Embeds a resolved permission set in a signed, short-lived JWT so ordinary
requests can be authorized without touching the stores.

The embedded set is a cache. It goes stale as soon as an assignment, override
or role link for the principal changes, so:

- access tokens live for ``AUTH_ACCESS_TOKEN_EXPIRE_MINUTES`` (default 15)
- refresh re-resolves from the stores
- administrative endpoints never read the snapshot (strict path)
- ``users.credentials_valid_after`` rejects every token issued before it

Access token claims::

    sub        principal id
    org        primary organization id (or null)
    perms      sorted base permission codes
    sub_units  {sub_unit_id: sorted codes}
    roles      effective GLOBAL role codes
    iat, exp, jti, iss, type="access"
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any
from uuid import UUID, uuid4

import structlog
from jose import JWTError, jwt

from parish_authz.core.config import settings
from parish_authz.core.errors import Unauthenticated
from parish_authz.services.resolver import ResolvedPermissions
from parish_authz.utils.timezone import UTC, utc_now

logger = structlog.get_logger()

ACCESS = "access"
REFRESH = "refresh"


@dataclass(frozen=True)
class IssuedCredential:
    """A signed token and when it stops being accepted."""

    token: str
    token_id: str
    issued_at: datetime
    expires_at: datetime

    @property
    def expires_in(self) -> int:
        return int((self.expires_at - self.issued_at).total_seconds())


@dataclass(frozen=True)
class PermissionSnapshot:
    """Verified token contents."""

    principal_id: UUID
    token_type: str
    token_id: str
    issued_at: datetime
    expires_at: datetime
    permissions: ResolvedPermissions | None = None

    @property
    def organization_id(self) -> UUID | None:
        return self.permissions.organization_id if self.permissions else None


class CredentialIssuer:
    """
    Issues and verifies HS256 JWTs. Stateless and safe to share.

    Usage:
        issuer = CredentialIssuer()
        credential = issuer.issue_credential(resolved)
        snapshot = issuer.verify_credential(credential.token)
    """

    def __init__(
        self,
        secret_key: str | None = None,
        algorithm: str | None = None,
        issuer: str | None = None,
        access_ttl: timedelta | None = None,
        refresh_ttl: timedelta | None = None,
    ):
        self.secret_key = secret_key or settings.auth.secret_key
        self.algorithm = algorithm or settings.auth.algorithm
        self.issuer = issuer or settings.auth.issuer
        self.access_ttl = access_ttl or timedelta(minutes=settings.auth.access_token_expire_minutes)
        self.refresh_ttl = refresh_ttl or timedelta(days=settings.auth.refresh_token_expire_days)

    def issue_credential(self, resolved: ResolvedPermissions) -> IssuedCredential:
        """Sign an access token carrying the resolved permission snapshot."""
        claims = {
            "org": str(resolved.organization_id) if resolved.organization_id else None,
            "perms": sorted(resolved.base),
            "sub_units": {
                str(sub_unit_id): sorted(codes)
                for sub_unit_id, codes in resolved.by_sub_unit.items()
            },
            "roles": sorted(resolved.global_role_codes),
        }
        credential = self._encode(resolved.principal_id, ACCESS, self.access_ttl, claims)
        logger.info(
            "credential_issued",
            user_id=str(resolved.principal_id),
            token_id=credential.token_id,
            permissions=len(resolved.base),
        )
        return credential

    def issue_refresh(self, principal_id: UUID) -> IssuedCredential:
        """Sign a refresh token. It carries no permissions."""
        return self._encode(principal_id, REFRESH, self.refresh_ttl, {})

    def verify_credential(self, token: str, token_type: str = ACCESS) -> PermissionSnapshot:
        """
        Verify signature, expiry, issuer and type.

        Does not check ``credentials_valid_after``; that needs the store and
        is done by ``AuthService.authenticate``.

        Raises:
            Unauthenticated: the token is invalid for any reason
        """
        try:
            payload = jwt.decode(
                token,
                self.secret_key,
                algorithms=[self.algorithm],
                issuer=self.issuer,
            )
        except JWTError as exc:
            raise Unauthenticated(f"Invalid token: {exc}") from exc

        if payload.get("type") != token_type:
            raise Unauthenticated(f"Expected {token_type} token")

        try:
            principal_id = UUID(payload["sub"])
            issued_at = datetime.fromtimestamp(float(payload["iat"]), UTC)
            expires_at = datetime.fromtimestamp(float(payload["exp"]), UTC)
            token_id = payload["jti"]
            permissions = None
            if token_type == ACCESS:
                permissions = _permissions_from_claims(principal_id, issued_at, payload)
        except (KeyError, TypeError, ValueError) as exc:
            raise Unauthenticated("Malformed token claims") from exc

        return PermissionSnapshot(
            principal_id=principal_id,
            token_type=token_type,
            token_id=token_id,
            issued_at=issued_at,
            expires_at=expires_at,
            permissions=permissions,
        )

    def _encode(
        self,
        principal_id: UUID,
        token_type: str,
        ttl: timedelta,
        claims: dict[str, Any],
    ) -> IssuedCredential:
        issued_at = utc_now()
        expires_at = issued_at + ttl
        token_id = uuid4().hex
        payload = {
            **claims,
            "sub": str(principal_id),
            "iss": self.issuer,
            # Sub-second iat so an invalidation cannot collide with a fresh login
            "iat": issued_at.timestamp(),
            "exp": int(expires_at.timestamp()),
            "jti": token_id,
            "type": token_type,
        }
        token = jwt.encode(payload, self.secret_key, algorithm=self.algorithm)
        return IssuedCredential(
            token=token,
            token_id=token_id,
            issued_at=issued_at,
            expires_at=expires_at,
        )


def _permissions_from_claims(
    principal_id: UUID,
    issued_at: datetime,
    payload: dict[str, Any],
) -> ResolvedPermissions:
    org = payload.get("org")
    return ResolvedPermissions(
        principal_id=principal_id,
        organization_id=UUID(org) if org else None,
        evaluated_at=issued_at,
        base=frozenset(payload["perms"]),
        by_sub_unit={
            UUID(sub_unit_id): frozenset(codes)
            for sub_unit_id, codes in payload.get("sub_units", {}).items()
        },
        global_role_codes=frozenset(payload.get("roles", [])),
    )
