# tarot_agenda/services/lifecycle.py
"""
Appointment lifecycle

Status state machine plus the create / reschedule / cancel operations.
Every mutation re-reads the appointment and runs its checks inside
``date_guard`` so the conflict check and the write are atomic per date.

Transitions:
    SCHEDULED   -> CONFIRMED | CANCELLED | NO_SHOW
    CONFIRMED   -> IN_PROGRESS | CANCELLED | NO_SHOW
    IN_PROGRESS -> COMPLETED | CANCELLED | NO_SHOW
    COMPLETED, CANCELLED, NO_SHOW are terminal.
NO_SHOW is only accepted once the scheduled start has passed.
"""
from __future__ import annotations
import enum
import logging
import math
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import or_
from sqlalchemy.orm import Session

from .. import models
from ..errors import ConflictError, InvalidStateError, NotFoundError, PermissionDeniedError, PolicyError
from .conflicts import find_conflicts
from .locks import date_guard
from .notifications import NotificationEvent, notify
from .schedule_config import ScheduleConfig, load_schedule_config
from .slots import TimeRange, format_hhmm, parse_hhmm

logger = logging.getLogger(__name__)

S = models.AppointmentStatus

TRANSITIONS: Dict[models.AppointmentStatus, frozenset] = {
    S.SCHEDULED: frozenset({S.CONFIRMED, S.CANCELLED, S.NO_SHOW}),
    S.CONFIRMED: frozenset({S.IN_PROGRESS, S.CANCELLED, S.NO_SHOW}),
    S.IN_PROGRESS: frozenset({S.COMPLETED, S.CANCELLED, S.NO_SHOW}),
    S.COMPLETED: frozenset(),
    S.CANCELLED: frozenset(),
    S.NO_SHOW: frozenset(),
}

TERMINAL = frozenset(s for s, nxt in TRANSITIONS.items() if not nxt)

# Fields an admin may edit without touching time or status
EDITABLE_FIELDS = ("admin_notes", "meeting_url", "meeting_password")


class ActorRole(str, enum.Enum):
    CLIENT = "client"
    ADMIN = "admin"


@dataclass(frozen=True)
class Actor:
    role: ActorRole
    client_id: Optional[str] = None

    @classmethod
    def admin(cls) -> "Actor":
        return cls(ActorRole.ADMIN)

    @classmethod
    def client(cls, client_id: str) -> "Actor":
        return cls(ActorRole.CLIENT, client_id)

    @property
    def is_admin(self) -> bool:
        return self.role == ActorRole.ADMIN


def can_transition(current: models.AppointmentStatus, target: models.AppointmentStatus) -> bool:
    return target in TRANSITIONS[current]


def parse_status(value) -> models.AppointmentStatus:
    if isinstance(value, models.AppointmentStatus):
        return value
    try:
        return models.AppointmentStatus(str(value).strip().upper())
    except ValueError:
        raise InvalidStateError(f"Unknown status: {value!r}")


def _utc(moment: datetime) -> datetime:
    return moment.astimezone(timezone.utc)


def _starts_at(config: ScheduleConfig, appt: models.Appointment) -> datetime:
    return config.localize(appt.scheduled_date, parse_hhmm(appt.start_time))


# ====== Queries ======
def get_appointment(db: Session, appointment_id: int) -> models.Appointment:
    appt = db.get(models.Appointment, appointment_id)
    if appt is None:
        raise NotFoundError("Appointment not found")
    return appt


def active_for_date(db: Session, day: date) -> List[models.Appointment]:
    """Non-cancelled appointments on ``day`` ordered by start time."""
    return (
        db.query(models.Appointment)
        .filter(models.Appointment.scheduled_date == day)
        .filter(models.Appointment.status != models.AppointmentStatus.CANCELLED)
        .order_by(models.Appointment.start_time.asc())
        .all()
    )


def list_for_client(db: Session, client_id: str) -> List[models.Appointment]:
    return (
        db.query(models.Appointment)
        .filter(models.Appointment.client_id == client_id)
        .order_by(models.Appointment.scheduled_date.desc(), models.Appointment.start_time.desc())
        .all()
    )


def list_appointments(
    db: Session,
    status: Optional[str] = None,
    day: Optional[date] = None,
    search: Optional[str] = None,
    page: int = 1,
    limit: int = 10,
) -> Tuple[List[models.Appointment], Dict[str, int]]:
    """Admin listing with filters and pagination; returns (items, meta)."""
    q = db.query(models.Appointment)
    if status:
        q = q.filter(models.Appointment.status == parse_status(status))
    if day:
        q = q.filter(models.Appointment.scheduled_date == day)
    if search:
        pattern = f"%{search.strip()}%"
        q = q.join(models.Client).filter(or_(
            models.Client.name.ilike(pattern),
            models.Client.contact.ilike(pattern),
        ))

    total = q.count()
    items = (
        q.order_by(models.Appointment.scheduled_date.asc(), models.Appointment.start_time.asc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    meta = {
        "total": total,
        "page": page,
        "limit": limit,
        "total_pages": math.ceil(total / limit) if limit else 0,
    }
    return items, meta


# ====== Policy ======
def check_booking_policy(config: ScheduleConfig, day: date, rng: TimeRange, now: datetime) -> None:
    """Raises PolicyError unless a client may book ``rng`` on ``day`` at ``now``."""
    if day in config.blocked_dates:
        raise PolicyError(f"{day.isoformat()} is not available for bookings")

    hours = config.hours_for(day)
    if not hours.enabled:
        raise PolicyError(f"No business hours on {day.strftime('%A')}")
    if rng.start < hours.start or rng.end > hours.end:
        raise PolicyError(
            f"Requested time is outside business hours ({format_hhmm(hours.start)}-{format_hhmm(hours.end)})"
        )

    now_local = config.to_local(now)
    if day > now_local.date() + timedelta(days=config.advance_booking_days):
        raise PolicyError(f"Bookings open at most {config.advance_booking_days} days ahead")
    if config.localize(day, rng.start) < now_local + timedelta(hours=config.min_notice_hours):
        raise PolicyError(f"Bookings require at least {config.min_notice_hours} hours notice")


def _ensure_free(db: Session, config: ScheduleConfig, day: date, rng: TimeRange,
                 exclude_id: Optional[int] = None) -> None:
    clashes = find_conflicts(rng, active_for_date(db, day), exclude_id, config.buffer_minutes)
    if clashes:
        logger.warning("Conflict on %s %s-%s with appointments %s",
                       day.isoformat(), rng.start_str, rng.end_str, [a.id for a in clashes])
        raise ConflictError("This time slot is already booked")


# ====== Operations ======
def create_appointment(
    db: Session,
    client_id: str,
    day: date,
    start: str,
    end: str,
    client_notes: Optional[str] = None,
    order_item_id: Optional[str] = None,
    now: Optional[datetime] = None,
    config: Optional[ScheduleConfig] = None,
) -> models.Appointment:
    config = config or load_schedule_config(db)
    now_local = config.to_local(now)
    rng = TimeRange.from_strings(start, end)

    if db.get(models.Client, client_id) is None:
        raise NotFoundError("Client not found")
    check_booking_policy(config, day, rng, now_local)

    with date_guard(db, day):
        _ensure_free(db, config, day, rng)
        appt = models.Appointment(
            client_id=client_id,
            order_item_id=order_item_id,
            scheduled_date=day,
            start_time=rng.start_str,
            end_time=rng.end_str,
            duration_minutes=rng.minutes,
            status=models.AppointmentStatus.SCHEDULED,
            client_notes=client_notes,
        )
        db.add(appt)
        db.commit()
    db.refresh(appt)

    logger.info("Appointment %s created: client=%s %s %s-%s",
                appt.id, client_id, day.isoformat(), appt.start_time, appt.end_time)
    notify(NotificationEvent.CREATED, appt)
    return appt


def reschedule_appointment(
    db: Session,
    appointment_id: int,
    new_day: date,
    new_start: str,
    new_end: str,
    now: Optional[datetime] = None,
    config: Optional[ScheduleConfig] = None,
) -> models.Appointment:
    """Admin move to a new interval; status goes back to SCHEDULED."""
    config = config or load_schedule_config(db)
    rng = TimeRange.from_strings(new_start, new_end)
    while True:
        appt = get_appointment(db, appointment_id)
        old_day = appt.scheduled_date

        with date_guard(db, old_day, new_day):
            db.refresh(appt)
            if appt.scheduled_date != old_day:
                # Moved by a concurrent reschedule; lock its current date instead
                logger.info("Appointment %s moved to %s while waiting for the lock, retrying",
                            appt.id, appt.scheduled_date.isoformat())
                continue
            if appt.status in TERMINAL:
                raise InvalidStateError(f"Cannot reschedule an appointment in status {appt.status.value}")
            _ensure_free(db, config, new_day, rng, exclude_id=appt.id)

            old_start = appt.start_time
            appt.scheduled_date = new_day
            appt.start_time = rng.start_str
            appt.end_time = rng.end_str
            appt.duration_minutes = rng.minutes
            appt.status = models.AppointmentStatus.SCHEDULED
            appt.confirmed_at = None
            appt.reminder_sent_at = None
            db.commit()
        break
    db.refresh(appt)

    logger.info("Appointment %s rescheduled: %s %s -> %s %s",
                appt.id, old_day.isoformat(), old_start, new_day.isoformat(), appt.start_time)
    notify(NotificationEvent.RESCHEDULED, appt)
    return appt


def cancel_appointment(
    db: Session,
    appointment_id: int,
    actor: Actor,
    reason: Optional[str] = None,
    now: Optional[datetime] = None,
    config: Optional[ScheduleConfig] = None,
) -> models.Appointment:
    """
    Clients may cancel their own appointments only while more than
    ``min_notice_hours`` remain before the start; admins cancel at any time.
    """
    config = config or load_schedule_config(db)
    now_local = config.to_local(now)
    appt = get_appointment(db, appointment_id)

    if not actor.is_admin and appt.client_id != actor.client_id:
        raise PermissionDeniedError("You can only cancel your own appointments")

    with date_guard(db, appt.scheduled_date):
        db.refresh(appt)
        if appt.status in TERMINAL:
            raise InvalidStateError(f"Cannot cancel an appointment in status {appt.status.value}")
        if not actor.is_admin:
            if _starts_at(config, appt) - now_local <= timedelta(hours=config.min_notice_hours):
                raise PolicyError(
                    f"Appointments can only be cancelled more than {config.min_notice_hours} hours in advance"
                )

        appt.status = models.AppointmentStatus.CANCELLED
        appt.cancelled_at = _utc(now_local)
        appt.cancellation_reason = reason
        db.commit()
    db.refresh(appt)

    logger.info("Appointment %s cancelled by %s", appt.id, actor.role.value)
    notify(NotificationEvent.CANCELLED, appt)
    return appt


def transition_status(
    db: Session,
    appointment_id: int,
    new_status,
    now: Optional[datetime] = None,
    config: Optional[ScheduleConfig] = None,
) -> models.Appointment:
    """Admin status change, validated against TRANSITIONS."""
    target = parse_status(new_status)
    config = config or load_schedule_config(db)
    now_local = config.to_local(now)
    appt = get_appointment(db, appointment_id)

    with date_guard(db, appt.scheduled_date):
        db.refresh(appt)
        current = appt.status
        if not can_transition(current, target):
            raise InvalidStateError(f"Cannot change status from {current.value} to {target.value}")
        if target == S.NO_SHOW and now_local < _starts_at(config, appt):
            raise InvalidStateError("No-show can only be set after the scheduled start")

        appt.status = target
        if target == S.CONFIRMED:
            appt.confirmed_at = _utc(now_local)
        elif target == S.CANCELLED:
            appt.cancelled_at = _utc(now_local)
        db.commit()
    db.refresh(appt)

    logger.info("Appointment %s status %s -> %s", appt.id, current.value, target.value)
    event = NotificationEvent.CANCELLED if target == S.CANCELLED else NotificationEvent.STATUS_CHANGED
    notify(event, appt)
    return appt


def update_details(db: Session, appointment_id: int, changes: Dict[str, Any]) -> models.Appointment:
    """Admin edit of notes and meeting fields; unknown keys are rejected."""
    unknown = set(changes) - set(EDITABLE_FIELDS)
    if unknown:
        raise ValueError(f"Fields not editable: {sorted(unknown)}")
    appt = get_appointment(db, appointment_id)
    for key, value in changes.items():
        setattr(appt, key, value)
    db.commit()
    db.refresh(appt)
    return appt
