# tarot_agenda/services/schedule_config.py
"""
Weekly business hours and booking policy.

``ScheduleConfig`` is an immutable snapshot read once per query from the
active ``schedule_settings`` record (or from application settings when no
record exists yet).
"""
from __future__ import annotations
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Optional

import pytz
from sqlalchemy.orm import Session

from ..config import settings
from .. import models
from .slots import parse_hhmm, format_hhmm

logger = logging.getLogger(__name__)

WEEKDAY_NAMES = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")


@dataclass(frozen=True)
class DayHours:
    enabled: bool
    start: int = 0  # minutes since midnight
    end: int = 0

    @classmethod
    def closed(cls) -> "DayHours":
        return cls(enabled=False)

    @classmethod
    def open(cls, start: str, end: str) -> "DayHours":
        return cls(enabled=True, start=parse_hhmm(start), end=parse_hhmm(end))


@dataclass(frozen=True)
class ScheduleConfig:
    week: tuple[DayHours, ...]  # Monday first
    slot_duration_minutes: int = settings.SLOT_MINUTES
    buffer_minutes: int = settings.BUFFER_MINUTES
    advance_booking_days: int = settings.ADVANCE_BOOKING_DAYS
    min_notice_hours: int = settings.MIN_NOTICE_HOURS
    blocked_dates: frozenset[date] = field(default_factory=frozenset)
    timezone: str = settings.TIMEZONE

    def __post_init__(self):
        if len(self.week) != 7:
            raise ValueError(f"week must have 7 entries, got {len(self.week)}")
        for name, hours in zip(WEEKDAY_NAMES, self.week):
            if hours.enabled and hours.start >= hours.end:
                raise ValueError(f"{name}: start must be before end")
        if self.slot_duration_minutes <= 0:
            raise ValueError("slot_duration_minutes must be greater than zero")
        if self.buffer_minutes < 0:
            raise ValueError("buffer_minutes cannot be negative")
        if self.advance_booking_days < 0 or self.min_notice_hours < 0:
            raise ValueError("advance_booking_days and min_notice_hours cannot be negative")
        try:
            pytz.timezone(self.timezone)
        except pytz.UnknownTimeZoneError as e:
            raise ValueError(f"Unknown timezone: {self.timezone}") from e

    def hours_for(self, day: date) -> DayHours:
        return self.week[day.weekday()]

    @property
    def tz(self):
        return pytz.timezone(self.timezone)

    def now(self) -> datetime:
        return datetime.now(self.tz)

    def to_local(self, moment: Optional[datetime]) -> datetime:
        """Aware datetime in the schedule zone; ``None`` means now, naive means local."""
        if moment is None:
            return self.now()
        if moment.tzinfo is None:
            return self.tz.localize(moment)
        return moment.astimezone(self.tz)

    def localize(self, day: date, minutes: int) -> datetime:
        """Start of ``minutes`` past midnight on ``day``, as an aware local datetime."""
        naive = datetime(day.year, day.month, day.day, minutes // 60, minutes % 60)
        return self.tz.localize(naive)


def default_config() -> ScheduleConfig:
    open_days = settings.open_weekdays()
    week = tuple(
        DayHours.open(settings.SCHEDULE_OPEN, settings.SCHEDULE_CLOSE) if i in open_days else DayHours.closed()
        for i in range(7)
    )
    # Policy fields fall back to the dataclass defaults, which read settings
    return ScheduleConfig(week=week)


def _week_from_json(raw: list) -> tuple[DayHours, ...]:
    week = []
    for entry in raw:
        if entry.get("enabled"):
            week.append(DayHours.open(entry["start"], entry["end"]))
        else:
            week.append(DayHours.closed())
    return tuple(week)


def week_to_json(week: tuple[DayHours, ...]) -> list[dict]:
    out = []
    for name, hours in zip(WEEKDAY_NAMES, week):
        item = {"day": name, "enabled": hours.enabled, "start": None, "end": None}
        if hours.enabled:
            item["start"] = format_hhmm(hours.start)
            item["end"] = format_hhmm(hours.end)
        out.append(item)
    return out


def config_from_record(rec: models.ScheduleSettings) -> ScheduleConfig:
    return ScheduleConfig(
        week=_week_from_json(rec.business_hours),
        slot_duration_minutes=rec.slot_duration_minutes,
        buffer_minutes=rec.buffer_minutes,
        advance_booking_days=rec.advance_booking_days,
        min_notice_hours=rec.min_notice_hours,
        blocked_dates=frozenset(date.fromisoformat(d) for d in (rec.blocked_dates or [])),
        timezone=rec.timezone,
    )


def _active_record(db: Session) -> Optional[models.ScheduleSettings]:
    return (
        db.query(models.ScheduleSettings)
        .filter(models.ScheduleSettings.is_active.is_(True))
        .order_by(models.ScheduleSettings.id.desc())
        .first()
    )


def load_schedule_config(db: Session) -> ScheduleConfig:
    """Active schedule record, or the defaults from settings when none was saved."""
    rec = _active_record(db)
    if rec is None:
        return default_config()
    return config_from_record(rec)


def save_schedule_config(db: Session, config: ScheduleConfig) -> models.ScheduleSettings:
    """Stores ``config`` as the active record (updating it in place if one exists)."""
    rec = _active_record(db)
    if rec is None:
        rec = models.ScheduleSettings(is_active=True)
        db.add(rec)
    rec.business_hours = week_to_json(config.week)
    rec.slot_duration_minutes = config.slot_duration_minutes
    rec.buffer_minutes = config.buffer_minutes
    rec.advance_booking_days = config.advance_booking_days
    rec.min_notice_hours = config.min_notice_hours
    rec.blocked_dates = sorted(d.isoformat() for d in config.blocked_dates)
    rec.timezone = config.timezone
    db.commit()
    db.refresh(rec)
    logger.info("Schedule settings saved: id=%s tz=%s slot=%s buffer=%s",
                rec.id, rec.timezone, rec.slot_duration_minutes, rec.buffer_minutes)
    return rec
