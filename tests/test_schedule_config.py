from __future__ import annotations

from datetime import date

from tarot_agenda import models
from tarot_agenda.config import settings
from tarot_agenda.services.schedule_config import (
    DayHours,
    ScheduleConfig,
    default_config,
    load_schedule_config,
    save_schedule_config,
    week_to_json,
)

from conftest import make_config


def test_default_config_follows_settings() -> None:
    config = default_config()

    assert config.hours_for(date(2026, 3, 2)) == DayHours.open("09:00", "18:00")
    assert config.hours_for(date(2026, 3, 7)).enabled is False
    assert config.hours_for(date(2026, 3, 8)).enabled is False
    assert config.slot_duration_minutes == 30
    assert config.buffer_minutes == 15
    assert config.min_notice_hours == 24
    assert config.advance_booking_days == 30
    assert config.timezone == "America/Sao_Paulo"


def test_load_without_record_returns_defaults(db) -> None:
    assert load_schedule_config(db) == default_config()


def test_saved_config_is_loaded_back(db) -> None:
    saturday_morning = DayHours.open("10:00", "14:00")
    config = make_config(
        week=(DayHours.open("09:00", "18:00"),) * 5 + (saturday_morning, DayHours.closed()),
        buffer_minutes=10,
        blocked_dates=frozenset({date(2026, 12, 25), date(2026, 12, 24)}),
    )

    rec = save_schedule_config(db, config)

    assert rec.blocked_dates == ["2026-12-24", "2026-12-25"]
    assert rec.business_hours[5] == {"day": "saturday", "enabled": True, "start": "10:00", "end": "14:00"}
    assert load_schedule_config(db) == config


def test_saving_again_updates_the_active_record(db) -> None:
    save_schedule_config(db, make_config())
    save_schedule_config(db, make_config(slot_duration_minutes=60))

    assert db.query(models.ScheduleSettings).count() == 1
    assert load_schedule_config(db).slot_duration_minutes == 60


def test_policy_defaults_come_from_settings(db) -> None:
    bare = ScheduleConfig(week=(DayHours.closed(),) * 7)
    rec = models.ScheduleSettings(business_hours=week_to_json(bare.week))
    db.add(rec)
    db.commit()

    assert bare.buffer_minutes == settings.BUFFER_MINUTES == 15
    assert rec.buffer_minutes == settings.BUFFER_MINUTES
    assert (rec.slot_duration_minutes, rec.advance_booking_days, rec.min_notice_hours, rec.timezone) == (
        bare.slot_duration_minutes,
        bare.advance_booking_days,
        bare.min_notice_hours,
        bare.timezone,
    )
