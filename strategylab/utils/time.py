"""UTC helpers.

All times are UTC. Bar times travel as integer epoch milliseconds; stored
records use ISO 8601 strings with a Z suffix.
"""

from __future__ import annotations

from datetime import UTC, datetime


def utc_now() -> datetime:
    """Return the current UTC datetime, timezone-aware."""
    return datetime.now(UTC)


def format_timestamp(dt: datetime) -> str:
    """Format a datetime as ISO 8601 with microsecond precision and Z suffix.

    Output format: YYYY-MM-DDTHH:MM:SS.ffffffZ
    """
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    utc_dt = dt.astimezone(UTC)
    return utc_dt.strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def parse_timestamp(s: str) -> datetime:
    """Parse an ISO 8601 timestamp back to a UTC datetime.

    A Z suffix is accepted; naive values are taken as UTC.
    """
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    dt = datetime.fromisoformat(s)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt


def from_epoch_ms(ms: int | float) -> datetime:
    """Epoch milliseconds to a timezone-aware UTC datetime."""
    return datetime.fromtimestamp(ms / 1000, tz=UTC)


def to_epoch_ms(dt: datetime) -> int:
    """UTC datetime to epoch milliseconds. Naive values are taken as UTC."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return int(dt.timestamp() * 1000)


def month_key(ms: int | float) -> str:
    """YYYY-MM of an epoch-millisecond time, in UTC."""
    return from_epoch_ms(ms).strftime("%Y-%m")
