"""
UTC datetime utilities for consistent timezone handling.

Signed URL expirations and sidecar timestamps are timezone-aware UTC.
Use these helpers instead of datetime.now() or datetime.utcnow().
"""

from datetime import UTC, datetime, timedelta


def utc_now() -> datetime:
    """
    Return the current UTC datetime with timezone info.

    Returns:
        Timezone-aware datetime in UTC
    """
    return datetime.now(UTC)


def expires_at_iso(expires_in: int, now: datetime | None = None) -> str:
    """
    Return the ISO-8601 UTC timestamp expires_in seconds after now.

    Args:
        expires_in: Window length in seconds
        now: Reference time; defaults to utc_now()

    Returns:
        ISO-8601 string with millisecond precision and a trailing "Z"
    """
    start = now or utc_now()
    moment = (start + timedelta(seconds=expires_in)).astimezone(UTC)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def from_timestamp_utc(timestamp: float) -> datetime:
    """
    Create a UTC-aware datetime from a Unix timestamp.
    Use instead of datetime.fromtimestamp() which returns naive local time.

    Args:
        timestamp: Unix timestamp (seconds since epoch)

    Returns:
        UTC-aware datetime
    """
    return datetime.fromtimestamp(timestamp, tz=UTC)
