"""
Monthly usage periods.

Quotas reset when the UTC calendar month changes. There is no reset job:
records carry the period they were written in and are compared against
the current period on every read and write.
"""

from datetime import datetime, timezone
from typing import Optional


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def current_period(now: Optional[datetime] = None) -> str:
    """
    Get the period token for the UTC month containing ``now``.

    Args:
        now: Reference time. Naive datetimes are taken as UTC.
            Defaults to the current time.

    Returns:
        Period token formatted as ``YYYY-MM``.
    """
    if now is None:
        now = utc_now()
    elif now.tzinfo is not None:
        now = now.astimezone(timezone.utc)

    return f"{now.year:04d}-{now.month:02d}"
