"""
Authentication service.

Login resolves permissions once and embeds them in the access token;
refresh resolves again; invalidation moves ``credentials_valid_after``
forward so every earlier token stops working at once.
"""

from dataclasses import dataclass
from uuid import UUID

import structlog
from passlib.context import CryptContext
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from parish_authz.core.errors import NotFound, Unauthenticated
from parish_authz.models.user import User
from parish_authz.services.audit import AuditAction, AuditService
from parish_authz.services.credentials import (
    REFRESH,
    CredentialIssuer,
    IssuedCredential,
    PermissionSnapshot,
)
from parish_authz.services.resolver import PermissionResolver
from parish_authz.utils.timezone import utc_now

logger = structlog.get_logger()

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    """Hash a password."""
    return pwd_context.hash(password)


def verify_password(plain: str, hashed: str) -> bool:
    """Verify password against hash."""
    return pwd_context.verify(plain, hashed)


@dataclass
class TokenPair:
    """Access and refresh token pair."""
    access: IssuedCredential
    refresh: IssuedCredential


class AuthService:
    """Authentication service."""

    def __init__(self, db: AsyncSession, issuer: CredentialIssuer | None = None):
        self.db = db
        self.issuer = issuer or CredentialIssuer()
        self.resolver = PermissionResolver(db)

    async def create_tokens(self, user: User) -> TokenPair:
        """Resolve permissions now and issue a fresh token pair."""
        resolved = await self.resolver.resolve(user.id)
        return TokenPair(
            access=self.issuer.issue_credential(resolved),
            refresh=self.issuer.issue_refresh(user.id),
        )

    async def login(self, email: str, password: str) -> TokenPair:
        """
        Authenticate with email and password.

        Raises:
            Unauthenticated: unknown email, wrong password or inactive user
        """
        stmt = select(User).where(User.email == email)
        result = await self.db.execute(stmt)
        user = result.scalar_one_or_none()

        if not user or not verify_password(password, user.password_hash):
            logger.info("login_failed", email=email)
            raise Unauthenticated("Invalid email or password")

        if not user.is_active:
            logger.info("login_failed", email=email, reason="inactive")
            raise Unauthenticated("User is inactive")

        user.last_login_at = utc_now()
        await self.db.flush()

        tokens = await self.create_tokens(user)
        logger.info("login_succeeded", user_id=str(user.id))
        return tokens

    async def refresh(self, refresh_token: str) -> TokenPair:
        """Exchange a refresh token for a new pair with freshly resolved permissions."""
        snapshot = self.issuer.verify_credential(refresh_token, token_type=REFRESH)
        user = await self._check_principal(snapshot)
        return await self.create_tokens(user)

    async def authenticate(self, token: str) -> tuple[User, PermissionSnapshot]:
        """
        Verify an access token against the store.

        Raises:
            Unauthenticated: invalid token, unknown or inactive user, or a
                token issued before the user's credentials were invalidated
        """
        snapshot = self.issuer.verify_credential(token)
        user = await self._check_principal(snapshot)
        return user, snapshot

    async def invalidate_credentials(self, user_id: UUID, performed_by: UUID | None = None) -> User:
        """Reject every token issued to the user before now."""
        user = await self.db.get(User, user_id)
        if user is None:
            raise NotFound("User not found", user_id=user_id)

        user.credentials_valid_after = utc_now()
        await self.db.flush()

        await AuditService(self.db).log(
            action=AuditAction.CREDENTIALS_INVALIDATED,
            entity_type="user",
            entity_id=user.id,
            performed_by=performed_by,
            new_value={"credentials_valid_after": user.credentials_valid_after},
        )
        return user

    async def _check_principal(self, snapshot: PermissionSnapshot) -> User:
        user = await self.db.get(User, snapshot.principal_id)
        if user is None:
            raise Unauthenticated("User not found")
        if not user.is_active:
            raise Unauthenticated("User is inactive")
        if not user.accepts_credentials_issued_at(snapshot.issued_at):
            raise Unauthenticated("Credential was invalidated", token_id=snapshot.token_id)
        return user
