"""
Centralized datetime utilities for callwatch.

All datetimes are handled in UTC. Payload timestamps, file-store names and
multipart nonces are all derived from these helpers so tests can pin the
clock with set_mock_time().
"""

from datetime import datetime, timezone
from typing import Optional


def utc_now() -> datetime:
    """
    Get current UTC datetime.

    Returns the mocked time when one was set with set_mock_time().

    Returns:
        Current datetime in UTC with timezone info
    """
    return _mock_time if _mock_time else datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """
    Ensure datetime is in UTC timezone.

    Naive datetimes are assumed to already be UTC.
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    elif dt.tzinfo == timezone.utc:
        return dt
    else:
        return dt.astimezone(timezone.utc)


def format_iso(dt: datetime) -> str:
    """
    Format datetime to ISO string with Z suffix.

    Example: "2024-01-15T10:30:45.123456Z"
    """
    utc_dt = ensure_utc(dt)
    return utc_dt.isoformat().replace('+00:00', 'Z')


def epoch_millis(dt: Optional[datetime] = None) -> int:
    """Milliseconds since the Unix epoch for dt (default: now)."""
    return int(ensure_utc(dt or utc_now()).timestamp() * 1000)


def compact_stamp(dt: Optional[datetime] = None) -> str:
    """
    Second-resolution stamp used in file names.

    Example: "20240115103045"
    """
    return ensure_utc(dt or utc_now()).strftime(COMPACT_FORMAT)


# For testing and mocking
_mock_time: Optional[datetime] = None


def set_mock_time(dt: Optional[datetime]) -> None:
    """
    Set mock time for testing.

    Example:
        set_mock_time(datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc))
        ...
        set_mock_time(None)
    """
    global _mock_time
    _mock_time = ensure_utc(dt) if dt else None


COMPACT_FORMAT = "%Y%m%d%H%M%S"
