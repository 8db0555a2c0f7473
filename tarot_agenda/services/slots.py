# tarot_agenda/services/slots.py
"""
Slot generation

Turns a ScheduleConfig and a calendar date into the ordered list of
candidate slots for that date. Pure function of its inputs.
"""
from __future__ import annotations
import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import TYPE_CHECKING, List, Optional

if TYPE_CHECKING:
    from .schedule_config import ScheduleConfig

MINUTES_PER_DAY = 24 * 60

_HHMM = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


def parse_hhmm(value: str) -> int:
    """Minutes since midnight: "14:30" -> 870."""
    m = _HHMM.match((value or "").strip())
    if not m:
        raise ValueError(f"Invalid time {value!r}, expected HH:MM (24h)")
    return int(m.group(1)) * 60 + int(m.group(2))


def format_hhmm(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


@dataclass(frozen=True, order=True)
class TimeRange:
    """Half-open interval [start, end) in minutes since midnight on one date."""

    start: int
    end: int

    def __post_init__(self):
        if not (0 <= self.start < self.end <= MINUTES_PER_DAY):
            raise ValueError(f"Invalid time range {self.start}-{self.end}")

    @classmethod
    def from_strings(cls, start: str, end: str) -> "TimeRange":
        return cls(parse_hhmm(start), parse_hhmm(end))

    @property
    def minutes(self) -> int:
        return self.end - self.start

    @property
    def start_str(self) -> str:
        return format_hhmm(self.start)

    @property
    def end_str(self) -> str:
        return format_hhmm(self.end)


def notice_cutoff(config: "ScheduleConfig", now: Optional[datetime] = None) -> datetime:
    """Earliest local moment a booking may start at."""
    return config.to_local(now) + timedelta(hours=config.min_notice_hours)


def is_bookable_date(config: "ScheduleConfig", day: date, now: Optional[datetime] = None) -> bool:
    hours = config.hours_for(day)
    if not hours.enabled or day in config.blocked_dates:
        return False
    now_local = config.to_local(now)
    if day > now_local.date() + timedelta(days=config.advance_booking_days):
        return False
    return day >= notice_cutoff(config, now_local).date()


def generate_slots(config: "ScheduleConfig", day: date, now: Optional[datetime] = None) -> List[TimeRange]:
    """
    Candidate slots for ``day``, ascending and contiguous.

    Empty when the weekday is closed, the date is blocked, or the date lies
    outside [now + min_notice_hours, today + advance_booking_days]. On the
    cutoff date itself, slots starting before the cutoff are left out.
    """
    if not is_bookable_date(config, day, now):
        return []

    hours = config.hours_for(day)
    cutoff = notice_cutoff(config, now)
    step = config.slot_duration_minutes

    slots: List[TimeRange] = []
    cur = hours.start
    while cur + step <= hours.end:
        if day > cutoff.date() or config.localize(day, cur) >= cutoff:
            slots.append(TimeRange(cur, cur + step))
        cur += step
    return slots
