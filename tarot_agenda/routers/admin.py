# tarot_agenda/routers/admin.py
from __future__ import annotations
from fastapi import APIRouter, Depends, Header, HTTPException, Query
from sqlalchemy.orm import Session
from datetime import date, datetime, timezone
from typing import Optional

from ..config import settings
from ..database import get_db
from .. import models, schemas
from ..services import lifecycle
from ..services.schedule_config import (
    DayHours,
    ScheduleConfig,
    load_schedule_config,
    save_schedule_config,
    week_to_json,
)

router = APIRouter(tags=["admin"])


# ──────────────────────────────────────────────────────────────────────────────
# Helpers
# ──────────────────────────────────────────────────────────────────────────────
def require_admin(x_admin_token: str | None = Header(default=None)) -> None:
    expected = (settings.ADMIN_TOKEN or "").strip()
    provided = (x_admin_token or "").strip()
    if not expected:
        raise HTTPException(status_code=403, detail="ADMIN_TOKEN not configured")
    if provided != expected:
        raise HTTPException(status_code=401, detail="Invalid token")


def _settings_out(config: ScheduleConfig) -> schemas.ScheduleSettingsOut:
    return schemas.ScheduleSettingsOut(
        business_hours=week_to_json(config.week),
        slot_duration_minutes=config.slot_duration_minutes,
        buffer_minutes=config.buffer_minutes,
        advance_booking_days=config.advance_booking_days,
        min_notice_hours=config.min_notice_hours,
        blocked_dates=sorted(config.blocked_dates),
        timezone=config.timezone,
    )


# ──────────────────────────────────────────────────────────────────────────────
# Basics (main.py mounts this router with prefix="/admin")
# ──────────────────────────────────────────────────────────────────────────────
@router.get("/health")
def admin_health():
    return {
        "ok": True,
        "app": settings.APP_NAME,
        "env": settings.ENV,
        "tz": settings.TIMEZONE,
        "ts": datetime.now(timezone.utc).isoformat(),
    }


# ──────────────────────────────────────────────────────────────────────────────
# Appointments
# ──────────────────────────────────────────────────────────────────────────────
@router.get("/appointments", response_model=schemas.AppointmentPage, dependencies=[Depends(require_admin)])
def admin_list_appointments(
    status: Optional[models.AppointmentStatus] = Query(default=None),
    day: Optional[date] = Query(default=None, alias="date", description="YYYY-MM-DD"),
    search: Optional[str] = Query(default=None, description="Client name or contact"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    db: Session = Depends(get_db),
):
    items, meta = lifecycle.list_appointments(db, status=status, day=day, search=search, page=page, limit=limit)
    return schemas.AppointmentPage(
        data=[schemas.AppointmentOut.model_validate(a) for a in items],
        meta=schemas.PageMeta(**meta),
    )


@router.get("/appointments/{appointment_id}", response_model=schemas.AppointmentOut,
            dependencies=[Depends(require_admin)])
def admin_get_appointment(appointment_id: int, db: Session = Depends(get_db)):
    return lifecycle.get_appointment(db, appointment_id)


@router.patch("/appointments/{appointment_id}/status", response_model=schemas.AppointmentOut,
              dependencies=[Depends(require_admin)])
def admin_update_status(appointment_id: int, req: schemas.StatusRequest, db: Session = Depends(get_db)):
    return lifecycle.transition_status(db, appointment_id, req.status)


@router.patch("/appointments/{appointment_id}/reschedule", response_model=schemas.AppointmentOut,
              dependencies=[Depends(require_admin)])
def admin_reschedule(appointment_id: int, req: schemas.RescheduleRequest, db: Session = Depends(get_db)):
    return lifecycle.reschedule_appointment(db, appointment_id, req.date, req.start_time, req.end_time)


@router.post("/appointments/{appointment_id}/cancel", response_model=schemas.AppointmentOut,
             dependencies=[Depends(require_admin)])
def admin_cancel(appointment_id: int, req: Optional[schemas.CancelRequest] = None, db: Session = Depends(get_db)):
    return lifecycle.cancel_appointment(
        db,
        appointment_id,
        actor=lifecycle.Actor.admin(),
        reason=req.reason if req else None,
    )


@router.patch("/appointments/{appointment_id}", response_model=schemas.AppointmentOut,
              dependencies=[Depends(require_admin)])
def admin_update_appointment(appointment_id: int, req: schemas.AppointmentUpdate, db: Session = Depends(get_db)):
    return lifecycle.update_details(db, appointment_id, req.model_dump(exclude_unset=True))


# ──────────────────────────────────────────────────────────────────────────────
# Schedule settings
# ──────────────────────────────────────────────────────────────────────────────
@router.get("/schedule-settings", response_model=schemas.ScheduleSettingsOut, dependencies=[Depends(require_admin)])
def admin_get_schedule_settings(db: Session = Depends(get_db)):
    return _settings_out(load_schedule_config(db))


@router.put("/schedule-settings", response_model=schemas.ScheduleSettingsOut, dependencies=[Depends(require_admin)])
def admin_put_schedule_settings(req: schemas.ScheduleSettingsIn, db: Session = Depends(get_db)):
    try:
        config = ScheduleConfig(
            week=tuple(
                DayHours.open(d.start, d.end) if d.enabled else DayHours.closed()
                for d in req.business_hours
            ),
            slot_duration_minutes=req.slot_duration_minutes,
            buffer_minutes=req.buffer_minutes,
            advance_booking_days=req.advance_booking_days,
            min_notice_hours=req.min_notice_hours,
            blocked_dates=frozenset(req.blocked_dates),
            timezone=req.timezone,
        )
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    save_schedule_config(db, config)
    return _settings_out(config)
