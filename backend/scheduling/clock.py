"""Pure time reasoning for the clinic calendar.

Nothing in here touches the database or keeps state; every function takes the
business hours and the current instant it needs as arguments.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta

from backend.core import config


@dataclass(frozen=True)
class BusinessHours:
    open_time: time
    close_time: time
    closed_weekdays: frozenset[int] = field(default_factory=frozenset)

    def is_open_on(self, day: date) -> bool:
        return day.isoweekday() not in self.closed_weekdays


@dataclass(frozen=True)
class GridSlot:
    start_time: time
    end_time: time


@dataclass(frozen=True)
class SchedulingSettings:
    hours: BusinessHours
    display_hours: BusinessHours
    granularity_minutes: int = 30
    missed_reason: str = 'missed'
    max_title_length: int = 120
    max_notes_length: int = 2000

    @classmethod
    def from_config(cls) -> 'SchedulingSettings':
        closed = frozenset(config.CLOSED_WEEKDAYS)
        return cls(
            hours=BusinessHours(config.BUSINESS_OPEN_TIME, config.BUSINESS_CLOSE_TIME, closed),
            display_hours=BusinessHours(config.DISPLAY_OPEN_TIME, config.DISPLAY_CLOSE_TIME, closed),
            granularity_minutes=config.SLOT_GRANULARITY_MINUTES,
            missed_reason=config.MISSED_CANCELLATION_REASON,
            max_title_length=config.MAX_TITLE_LENGTH,
            max_notes_length=config.MAX_NOTES_LENGTH,
        )


def to_minutes(value: time) -> int:
    return value.hour * 60 + value.minute


def from_minutes(minutes: int) -> time:
    return time(minutes // 60, minutes % 60)


def is_past(instant: datetime, now: datetime | None = None) -> bool:
    """An instant equal to ``now`` has already started and counts as past."""
    return instant <= (now or datetime.now())


def is_within_business_hours(value: time, hours: BusinessHours) -> bool:
    return hours.open_time <= value <= hours.close_time


def is_interval_within_business_hours(start_time: time, end_time: time, hours: BusinessHours) -> bool:
    return (
        is_within_business_hours(start_time, hours)
        and is_within_business_hours(end_time, hours)
        and start_time < hours.close_time
    )


def is_aligned(value: time, granularity_minutes: int) -> bool:
    return value.second == 0 and value.microsecond == 0 and to_minutes(value) % granularity_minutes == 0


def intervals_overlap(a_start: time, a_end: time, b_start: time, b_end: time) -> bool:
    return a_start < b_end and b_start < a_end


def generate_slot_grid(day: date, granularity_minutes: int, hours: BusinessHours) -> list[GridSlot]:
    """Contiguous slots covering the booking window of ``day``.

    A trailing remainder shorter than one slot is not offered.
    """
    del day  # every open day shares the same grid
    slots: list[GridSlot] = []
    current = to_minutes(hours.open_time)
    close = to_minutes(hours.close_time)

    while current + granularity_minutes <= close:
        slots.append(GridSlot(from_minutes(current), from_minutes(current + granularity_minutes)))
        current += granularity_minutes

    return slots


def next_slot_boundary(instant: datetime, granularity_minutes: int) -> datetime:
    current = instant.replace(second=0, microsecond=0)
    remainder = (current.hour * 60 + current.minute) % granularity_minutes
    return current + timedelta(minutes=granularity_minutes - remainder)


def round_up_to_next_granularity(instant: datetime, granularity_minutes: int) -> time:
    """First grid boundary strictly after ``instant``.

    Wraps to ``00:00`` past midnight; use ``next_slot_boundary`` when the
    date matters.
    """
    return next_slot_boundary(instant, granularity_minutes).time()
