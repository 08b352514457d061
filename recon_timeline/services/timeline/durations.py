"""
Day arithmetic for stage timelines.

All values are normalised to aware UTC datetimes before subtracting, so a
"day" is always a 24 hour span of UTC time.
"""

import math
from datetime import UTC, datetime
from typing import Any

from recon_timeline.models.domain.timeline_domain import parse_timestamp

SECONDS_PER_DAY = 24 * 60 * 60


def utc_now() -> datetime:
    return datetime.now(UTC)


def days_since(start: Any, end: Any = None) -> int:
    """
    Whole days from start to end, rounded up.

    Args:
        start: Start timestamp (datetime, date or ISO string). Absent -> 0.
        end: End timestamp, defaults to now.
    """
    start_dt = parse_timestamp(start)
    if start_dt is None:
        return 0
    end_dt = parse_timestamp(end) or utc_now()
    return math.ceil((end_dt - start_dt).total_seconds() / SECONDS_PER_DAY)


def is_overdue(date: Any, completed: bool, threshold: int = 5, now: Any = None) -> bool:
    """True when an uncompleted stage has run longer than threshold days."""
    if completed or parse_timestamp(date) is None:
        return False
    return days_since(date, now) > threshold


def warning_threshold(target: int, warning_percent: int) -> int:
    """Day count at which a stage becomes at risk: ceil(target * percent / 100)."""
    return math.ceil(target * warning_percent / 100)
