"""
Unified clock helpers.

Rules:
1. Internal time is always UTC
2. Do not call datetime.now() or datetime.utcnow() directly
3. Persisted and transmitted timestamps are ISO 8601 UTC with a Z suffix
"""

from datetime import datetime, timezone
from typing import Optional


def utc_now() -> datetime:
    """
    Current UTC time (timezone-aware)

    Example:
        >>> now = utc_now()
        >>> now.tzinfo  # timezone.utc
    """
    return datetime.now(timezone.utc)


def utc_now_iso() -> str:
    """
    Current UTC time as ISO 8601 with Z suffix

    Fixed-width output, so stored values sort chronologically as strings.

    Example:
        >>> utc_now_iso()
        '2026-01-31T12:34:56.789012Z'
    """
    return iso_z(utc_now())


def iso_z(dt: Optional[datetime]) -> Optional[str]:
    """
    Convert a datetime to ISO 8601 UTC with Z suffix

    Naive datetimes are declared UTC (not converted).

    Example:
        >>> iso_z(datetime(2026, 1, 31, 12, 34, 56, 789012, tzinfo=timezone.utc))
        '2026-01-31T12:34:56.789012Z'
    """
    if dt is None:
        return None

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    else:
        dt = dt.astimezone(timezone.utc)

    return dt.strftime('%Y-%m-%dT%H:%M:%S.%fZ')
