# tarot_agenda/services/availability.py
from __future__ import annotations
from dataclasses import dataclass
from datetime import date, datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from .conflicts import has_conflict
from .lifecycle import active_for_date
from .schedule_config import ScheduleConfig, load_schedule_config
from .slots import generate_slots


@dataclass(frozen=True)
class SlotAvailability:
    start: str
    end: str
    available: bool


def get_available_slots(
    db: Session,
    day: date,
    now: Optional[datetime] = None,
    config: Optional[ScheduleConfig] = None,
) -> List[SlotAvailability]:
    """
    Every generated slot for ``day``, each flagged available unless it
    conflicts with a non-cancelled booking. Taken slots are kept so the UI
    can render the full grid.
    """
    config = config or load_schedule_config(db)
    slots = generate_slots(config, day, now)
    if not slots:
        return []

    existing = active_for_date(db, day)
    return [
        SlotAvailability(
            start=slot.start_str,
            end=slot.end_str,
            available=not has_conflict(slot, existing, buffer_minutes=config.buffer_minutes),
        )
        for slot in slots
    ]
