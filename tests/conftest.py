from __future__ import annotations

import os

# Must be set before tarot_agenda.config is imported.
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ADMIN_TOKEN"] = "test-admin"
os.environ["DRY_RUN"] = "true"
os.environ["REMINDERS_ENABLED"] = "false"
os.environ["TIMEZONE"] = "America/Sao_Paulo"

from datetime import date, datetime
from unittest.mock import patch

import pytest
import pytz
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from tarot_agenda import models
from tarot_agenda.database import Base
from tarot_agenda.services import lifecycle
from tarot_agenda.services.schedule_config import DayHours, ScheduleConfig

TZ = pytz.timezone("America/Sao_Paulo")

# Monday 2 March 2026, 09:00 local
NOW = TZ.localize(datetime(2026, 3, 2, 9, 0))
# Wednesday, two days after NOW
WEDNESDAY = date(2026, 3, 4)
SATURDAY = date(2026, 3, 7)


def local(*args) -> datetime:
    return TZ.localize(datetime(*args))


def make_config(**overrides) -> ScheduleConfig:
    weekday = DayHours.open("09:00", "18:00")
    values = dict(
        week=(weekday,) * 5 + (DayHours.closed(), DayHours.closed()),
        slot_duration_minutes=30,
        buffer_minutes=0,
        advance_booking_days=30,
        min_notice_hours=24,
        blocked_dates=frozenset(),
        timezone="America/Sao_Paulo",
    )
    values.update(overrides)
    return ScheduleConfig(**values)


@pytest.fixture
def config() -> ScheduleConfig:
    return make_config()


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, future=True)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def clients(db):
    ana = models.Client(id="client-ana", name="Ana Souza", contact="+5511988887777")
    bia = models.Client(id="client-bia", name="Beatriz Lima", contact="+5511977776666")
    db.add_all([ana, bia])
    db.commit()
    return ana, bia


@pytest.fixture(autouse=True)
def notified():
    """Captures lifecycle notifications instead of queueing deliveries."""
    with patch("tarot_agenda.services.lifecycle.notify") as mock_notify:
        yield mock_notify


@pytest.fixture
def book(db, config, clients):
    """Books through the lifecycle with the fixed clock and config."""

    def _book(start: str, end: str, day: date = WEDNESDAY, client_id: str = "client-ana", **kwargs):
        kwargs.setdefault("now", NOW)
        kwargs.setdefault("config", config)
        return lifecycle.create_appointment(db, client_id, day, start, end, **kwargs)

    return _book
