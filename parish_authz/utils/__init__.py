"""Shared helpers."""

from parish_authz.utils.timezone import UTC, has_lapsed, to_utc, utc_now

__all__ = [
    "UTC",
    "has_lapsed",
    "to_utc",
    "utc_now",
]
