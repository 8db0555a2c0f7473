# tarot_agenda/services/locks.py
"""
Per-date serialization for check-then-write booking sequences.

Two layers, both scoped to the calendar date:
- an in-process lock picked from a fixed stripe pool by the date's ordinal;
- a row lock on ``schedule_days`` (SELECT ... FOR UPDATE), which serializes
  workers in other processes on Postgres.
The session is committed by the caller inside the guard; any error rolls it
back before the locks are released.
"""
from __future__ import annotations
import logging
import threading
from contextlib import contextmanager
from datetime import date
from typing import Iterator

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from .. import models
from ..errors import StorageUnavailableError

logger = logging.getLogger(__name__)

_STRIPES = 64
_stripe_locks = [threading.Lock() for _ in range(_STRIPES)]

_UPSERT = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


def _stripe(day: date) -> int:
    return day.toordinal() % _STRIPES


def _lock_day_row(db: Session, day: date) -> None:
    insert = _UPSERT.get(db.get_bind().dialect.name)
    if insert is not None:
        db.execute(
            insert(models.ScheduleDay).values(day=day).on_conflict_do_nothing(index_elements=["day"])
        )
    elif db.get(models.ScheduleDay, day) is None:
        db.add(models.ScheduleDay(day=day))
        db.flush()
    db.query(models.ScheduleDay).filter(models.ScheduleDay.day == day).with_for_update().one()


@contextmanager
def date_guard(db: Session, *days: date) -> Iterator[None]:
    """Holds the locks of every date in ``days`` (ascending order) for the block."""
    ordered = sorted(set(days))
    stripes = sorted({_stripe(d) for d in ordered})
    for i in stripes:
        _stripe_locks[i].acquire()
    try:
        for d in ordered:
            _lock_day_row(db, d)
        yield
    except OperationalError as e:
        db.rollback()
        logger.error("Storage error while holding date lock %s: %s", [d.isoformat() for d in ordered], e)
        raise StorageUnavailableError("Storage temporarily unavailable, try again") from e
    except Exception:
        db.rollback()
        raise
    finally:
        for i in reversed(stripes):
            _stripe_locks[i].release()
