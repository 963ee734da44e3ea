"""
UTC helpers.

Every instant the authorization model compares (assignment expiry, token
issue time, the credential cutoff on a user) is a timezone-aware UTC
datetime. SQLite hands back naive datetimes even for ``DateTime(timezone=True)``
columns, so anything read from the database goes through ``to_utc`` first.
"""

from datetime import datetime, timezone

UTC = timezone.utc


def utc_now() -> datetime:
    """Current time, timezone-aware UTC."""
    return datetime.now(UTC)


def to_utc(dt: datetime) -> datetime:
    """Convert to UTC; naive values are taken to already be UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def has_lapsed(expires_at: datetime | None, at: datetime) -> bool:
    """True once ``at`` has reached ``expires_at``. No expiry never lapses."""
    if expires_at is None:
        return False
    return to_utc(expires_at) <= to_utc(at)
