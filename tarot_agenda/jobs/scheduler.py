# tarot_agenda/jobs/scheduler.py
import logging
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from sqlalchemy.orm import Session

from ..database import SessionLocal
from ..config import settings
from ..models import Appointment, AppointmentStatus
from ..services.notifications import NotificationEvent, notify
from ..services.schedule_config import load_schedule_config
from ..services.slots import parse_hhmm

logger = logging.getLogger(__name__)


def send_due_reminders(db: Session, now: Optional[datetime] = None,
                       hours_before: Optional[int] = None) -> List[int]:
    """
    Notifies every SCHEDULED/CONFIRMED appointment starting within the next
    ``hours_before`` hours that has not been reminded yet. Returns their ids.
    """
    config = load_schedule_config(db)
    now_local = config.to_local(now)
    window = timedelta(hours=hours_before if hours_before is not None else settings.REMINDER_HOURS_BEFORE)
    horizon = now_local + window

    candidates = db.query(Appointment).filter(
        Appointment.scheduled_date >= now_local.date(),
        Appointment.scheduled_date <= horizon.date(),
        Appointment.status.in_([AppointmentStatus.SCHEDULED, AppointmentStatus.CONFIRMED]),
        Appointment.reminder_sent_at.is_(None),
    ).all()

    sent = []
    for a in candidates:
        starts_at = config.localize(a.scheduled_date, parse_hhmm(a.start_time))
        if not (now_local <= starts_at <= horizon):
            continue
        a.reminder_sent_at = now_local.astimezone(timezone.utc)
        sent.append(a)
    db.commit()

    for a in sent:
        notify(NotificationEvent.REMINDER, a)
    if sent:
        logger.info("Reminders sent for appointments %s", [a.id for a in sent])
    return [a.id for a in sent]


def reminder_job():
    db: Session = SessionLocal()
    try:
        send_due_reminders(db)
    finally:
        db.close()


def start_scheduler():
    # Only positions the hourly tick; send_due_reminders computes its window
    # in the timezone of the active schedule settings.
    scheduler = BackgroundScheduler(timezone=settings.TIMEZONE)
    scheduler.add_job(reminder_job, CronTrigger(minute=0))  # every hour
    scheduler.start()
    logger.info("Reminder scheduler started (tz=%s, %sh before)", settings.TIMEZONE, settings.REMINDER_HOURS_BEFORE)
    return scheduler
