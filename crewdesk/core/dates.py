from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from typing import Callable, NamedTuple, Optional

from crewdesk.core.errors import ValidationError


# Mongo stores datetimes with millisecond precision, so the last instant of a
# day is 23:59:59.999 rather than .999999.
_LAST_MICROSECOND = 999000

Clock = Callable[[], datetime]

PRESETS = ("today", "week", "month", "custom")


class DateRange(NamedTuple):
    start: datetime
    end: datetime

    def contains(self, value: datetime) -> bool:
        return self.start <= value <= self.end


def utcnow() -> datetime:
    """Naive UTC now, the representation every stored timestamp uses."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def start_of_day(value: datetime | date) -> datetime:
    return datetime(value.year, value.month, value.day)


def end_of_day(value: datetime | date) -> datetime:
    return start_of_day(value).replace(hour=23, minute=59, second=59, microsecond=_LAST_MICROSECOND)


def combine(day: date, wall_clock: time) -> datetime:
    return datetime.combine(day, wall_clock.replace(tzinfo=None))


def rolling_week(reference: datetime) -> DateRange:
    """Seven days starting today. Not an ISO calendar week."""
    start = start_of_day(reference)
    return DateRange(start, end_of_day(start + timedelta(days=6)))


def month_range(reference: datetime) -> DateRange:
    start = datetime(reference.year, reference.month, 1)
    if reference.month == 12:
        next_month = datetime(reference.year + 1, 1, 1)
    else:
        next_month = datetime(reference.year, reference.month + 1, 1)
    return DateRange(start, next_month - timedelta(microseconds=1000))


def resolve_range(
    preset: str,
    reference: Optional[datetime] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    clock: Clock = utcnow,
) -> DateRange:
    """Turn a filter preset into concrete inclusive bounds.

    ``reference`` defaults to ``clock()``. The ``custom`` preset widens the
    explicit pair to whole days.
    """
    ref = reference if reference is not None else clock()
    if preset == "today":
        return DateRange(start_of_day(ref), end_of_day(ref))
    if preset == "week":
        return rolling_week(ref)
    if preset == "month":
        return month_range(ref)
    if preset == "custom":
        if start is None or end is None:
            raise ValidationError("A custom range needs both start and end")
        if start > end:
            raise ValidationError("Range start must not be after its end")
        return DateRange(start_of_day(start), end_of_day(end))
    raise ValidationError(f"Unknown range preset: {preset}")


def duration_minutes(start: datetime, end: datetime) -> int:
    # Clock skew between devices must never yield a negative interval
    return max(round((end - start).total_seconds() / 60), 0)
