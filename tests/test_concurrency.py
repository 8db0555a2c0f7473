from __future__ import annotations

import threading
from datetime import date

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from tarot_agenda import models
from tarot_agenda.database import Base
from tarot_agenda.errors import ConflictError
from tarot_agenda.services import lifecycle

from conftest import NOW, WEDNESDAY, make_config

THURSDAY = date(2026, 3, 5)


@pytest.fixture
def file_sessions(tmp_path):
    """Session factory on a SQLite file so every thread gets its own connection."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'agenda.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
        future=True,
    )
    Base.metadata.create_all(bind=engine)
    Session = sessionmaker(bind=engine, autocommit=False, autoflush=False, future=True)
    with Session() as db:
        db.add_all([
            models.Client(id="client-ana", name="Ana Souza"),
            models.Client(id="client-bia", name="Beatriz Lima"),
        ])
        db.commit()
    yield Session
    engine.dispose()


def _race(Session, *attempts):
    """Runs each attempt(db) in its own thread, released together; returns results in order."""
    barrier = threading.Barrier(len(attempts))
    outcomes = [None] * len(attempts)

    def run(i, attempt):
        with Session() as db:
            barrier.wait()
            try:
                outcomes[i] = attempt(db)
            except ConflictError as e:
                outcomes[i] = e

    threads = [threading.Thread(target=run, args=(i, a)) for i, a in enumerate(attempts)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)
    return outcomes


def _book(Session, client_id, day, start, end):
    with Session() as db:
        return lifecycle.create_appointment(
            db, client_id, day, start, end, now=NOW, config=make_config()
        ).id


def _starts_on(Session, day):
    with Session() as db:
        return sorted(
            a.start_time
            for a in db.query(models.Appointment).filter(models.Appointment.scheduled_date == day)
        )


def test_simultaneous_bookings_for_one_slot_yield_one_appointment(file_sessions) -> None:
    config = make_config()

    def book_as(client_id):
        return lambda db: lifecycle.create_appointment(
            db, client_id, WEDNESDAY, "10:00", "10:30", now=NOW, config=config
        ).id

    outcomes = _race(file_sessions, book_as("client-ana"), book_as("client-bia"))

    assert sum(isinstance(o, ConflictError) for o in outcomes) == 1
    assert _starts_on(file_sessions, WEDNESDAY) == ["10:00"]


def test_simultaneous_reschedules_into_one_slot_let_only_one_move(file_sessions) -> None:
    config = make_config()
    first = _book(file_sessions, "client-ana", WEDNESDAY, "10:00", "10:30")
    second = _book(file_sessions, "client-bia", WEDNESDAY, "11:00", "11:30")

    def move(appointment_id):
        return lambda db: lifecycle.reschedule_appointment(
            db, appointment_id, WEDNESDAY, "14:00", "14:30", now=NOW, config=config
        ).id

    outcomes = _race(file_sessions, move(first), move(second))

    assert sum(isinstance(o, ConflictError) for o in outcomes) == 1
    starts = _starts_on(file_sessions, WEDNESDAY)
    assert starts.count("14:00") == 1
    assert starts in (["10:00", "14:00"], ["11:00", "14:00"])


def test_booking_and_cross_date_reschedule_race_for_one_slot(file_sessions) -> None:
    config = make_config()
    thursday_id = _book(file_sessions, "client-bia", THURSDAY, "10:00", "10:30")

    def book(db):
        return lifecycle.create_appointment(
            db, "client-ana", WEDNESDAY, "14:00", "14:30", now=NOW, config=config
        ).id

    def move(db):
        return lifecycle.reschedule_appointment(
            db, thursday_id, WEDNESDAY, "14:00", "14:30", now=NOW, config=config
        ).id

    booked, moved = _race(file_sessions, book, move)

    assert [isinstance(booked, ConflictError), isinstance(moved, ConflictError)].count(True) == 1
    assert _starts_on(file_sessions, WEDNESDAY) == ["14:00"]
    if isinstance(moved, ConflictError):
        assert _starts_on(file_sessions, THURSDAY) == ["10:00"]
    else:
        assert _starts_on(file_sessions, THURSDAY) == []
