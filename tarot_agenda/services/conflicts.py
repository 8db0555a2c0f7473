# tarot_agenda/services/conflicts.py
"""
Conflict detection between a candidate interval and existing bookings.

The same predicate marks slots in availability queries and validates
create/reschedule requests.
"""
from __future__ import annotations
from typing import Iterable, List, Optional

from .. import models
from .slots import TimeRange


def overlaps(a: TimeRange, b: TimeRange, buffer_minutes: int = 0) -> bool:
    """
    Half-open overlap on the same date. ``b`` is widened by ``buffer_minutes``
    on both sides, so a booking keeps that gap free before and after it.
    """
    return a.start < b.end + buffer_minutes and a.end + buffer_minutes > b.start


def booking_range(appt: models.Appointment) -> TimeRange:
    return TimeRange.from_strings(appt.start_time, appt.end_time)


def find_conflicts(
    candidate: TimeRange,
    existing: Iterable[models.Appointment],
    exclude_id: Optional[int] = None,
    buffer_minutes: int = 0,
) -> List[models.Appointment]:
    """Non-cancelled bookings (other than ``exclude_id``) overlapping ``candidate``."""
    out = []
    for appt in existing:
        if exclude_id is not None and appt.id == exclude_id:
            continue
        if appt.status == models.AppointmentStatus.CANCELLED:
            continue
        if overlaps(candidate, booking_range(appt), buffer_minutes):
            out.append(appt)
    return out


def has_conflict(
    candidate: TimeRange,
    existing: Iterable[models.Appointment],
    exclude_id: Optional[int] = None,
    buffer_minutes: int = 0,
) -> bool:
    return bool(find_conflicts(candidate, existing, exclude_id, buffer_minutes))
