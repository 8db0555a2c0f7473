from __future__ import annotations

from tarot_agenda import models
from tarot_agenda.services.conflicts import find_conflicts, has_conflict, overlaps
from tarot_agenda.services.slots import TimeRange

S = models.AppointmentStatus


def _range(start: str, end: str) -> TimeRange:
    return TimeRange.from_strings(start, end)


def _appt(appt_id: int, start: str, end: str, status: S = S.SCHEDULED) -> models.Appointment:
    return models.Appointment(id=appt_id, start_time=start, end_time=end, status=status)


def test_touching_intervals_do_not_overlap() -> None:
    assert overlaps(_range("09:00", "09:30"), _range("09:30", "10:00")) is False
    assert overlaps(_range("09:30", "10:00"), _range("09:00", "09:30")) is False


def test_partial_and_nested_intervals_overlap() -> None:
    assert overlaps(_range("09:00", "09:45"), _range("09:30", "10:00")) is True
    assert overlaps(_range("09:00", "12:00"), _range("10:00", "10:30")) is True
    assert overlaps(_range("10:00", "10:30"), _range("09:00", "12:00")) is True


def test_buffer_keeps_a_gap_around_the_booking() -> None:
    booked = _range("10:00", "10:30")

    assert overlaps(_range("10:30", "11:00"), booked, buffer_minutes=15) is True
    assert overlaps(_range("09:30", "10:00"), booked, buffer_minutes=15) is True
    assert overlaps(_range("10:45", "11:15"), booked, buffer_minutes=15) is False
    assert overlaps(_range("09:00", "09:45"), booked, buffer_minutes=15) is False


def test_cancelled_bookings_never_conflict() -> None:
    existing = [_appt(1, "10:00", "11:00", S.CANCELLED)]

    assert has_conflict(_range("10:00", "11:00"), existing) is False


def test_every_other_status_blocks_the_interval() -> None:
    for status in (S.SCHEDULED, S.CONFIRMED, S.IN_PROGRESS, S.COMPLETED, S.NO_SHOW):
        assert has_conflict(_range("10:15", "10:45"), [_appt(1, "10:00", "11:00", status)]) is True


def test_excluded_id_is_ignored() -> None:
    existing = [_appt(1, "10:00", "11:00"), _appt(2, "14:00", "15:00")]

    assert has_conflict(_range("10:00", "11:00"), existing, exclude_id=1) is False
    assert has_conflict(_range("14:30", "15:30"), existing, exclude_id=1) is True


def test_find_conflicts_lists_every_clash() -> None:
    existing = [
        _appt(1, "09:00", "09:30"),
        _appt(2, "09:30", "10:00"),
        _appt(3, "11:00", "11:30"),
    ]

    clashes = find_conflicts(_range("09:15", "09:45"), existing)

    assert [a.id for a in clashes] == [1, 2]
