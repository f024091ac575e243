"""
UTC timestamp helpers (stdlib-only).

Provider DTOs and dead-letter records carry RFC3339 strings; schedulers
compare unix milliseconds.  Keep both conversions here so every module
agrees on precision and timezone.
"""

import time
from datetime import UTC, datetime


def utc_now() -> datetime:
    """Get current UTC datetime."""
    return datetime.now(UTC)


def now_unix_ms() -> int:
    """Current wall-clock time in unix milliseconds."""
    return int(time.time() * 1000)


def to_rfc3339(dt: datetime | None = None) -> str:
    """Format ``dt`` (default: now) as RFC3339 with a ``Z`` suffix."""
    if dt is None:
        dt = utc_now()
    return dt.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def from_unix_ms(value: int) -> datetime:
    """Convert unix milliseconds to an aware UTC datetime."""
    return datetime.fromtimestamp(value / 1000, tz=UTC)
