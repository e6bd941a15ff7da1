"""
Core utilities module for callwatch.
"""

from .datetime_utils import (
    utc_now,
    ensure_utc,
    format_iso,
    epoch_millis,
    compact_stamp,
    set_mock_time,
    COMPACT_FORMAT,
)

__all__ = [
    'utc_now',
    'ensure_utc',
    'format_iso',
    'epoch_millis',
    'compact_stamp',
    'set_mock_time',
    'COMPACT_FORMAT',
]
