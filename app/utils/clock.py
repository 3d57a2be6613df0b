"""Time helpers for timestamps stored in MongoDB.

Motor hands datetimes back as naive UTC, so everything written to the
store is normalized to naive UTC too.
"""
import math
from datetime import date, datetime, timedelta, timezone
from typing import Optional


def utcnow() -> datetime:
    """Current time as a naive UTC datetime."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_naive_utc(value: datetime) -> datetime:
    """
    Normalize a datetime to naive UTC.

    Aware values are converted to UTC first; naive values are assumed
    to already be UTC.

    Example:
        >>> as_naive_utc(datetime(2024, 1, 1, 10, 0, tzinfo=timezone(timedelta(hours=1))))
        datetime.datetime(2024, 1, 1, 9, 0)
    """
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def elapsed_ms(start: datetime, end: datetime) -> int:
    """Milliseconds from start to end (negative if end precedes start)."""
    return int((end - start) / timedelta(milliseconds=1))


def compute_duration(
    start_time: datetime,
    end_time: datetime,
    total_paused_ms: int = 0,
) -> int:
    """
    Worked minutes between two timestamps, excluding paused time.

    Rounds half up to the nearest minute and clamps at zero, so clock
    skew never produces a negative duration.

    Args:
        start_time: Start of the interval
        end_time: End of the interval
        total_paused_ms: Milliseconds spent paused inside the interval

    Returns:
        Duration in whole minutes

    Example:
        >>> compute_duration(datetime(2024, 1, 1, 9), datetime(2024, 1, 1, 11, 30))
        150
    """
    worked_ms = elapsed_ms(start_time, end_time) - (total_paused_ms or 0)
    minutes = math.floor(worked_ms / 60000 + 0.5)
    return max(minutes, 0)


def shift_to_date(value: Optional[datetime], new_date: date, anchor: date) -> Optional[datetime]:
    """
    Move a timestamp by the number of days between anchor and new_date.

    The time-of-day is preserved. Shifting start and end by the same
    anchor keeps an interval that crosses midnight intact.
    """
    if value is None:
        return None
    return value + timedelta(days=(new_date - anchor).days)
