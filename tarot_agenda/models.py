# tarot_agenda/models.py
from typing import Optional
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import Integer, String, Date, DateTime, Enum, ForeignKey, Boolean, Text, JSON
from datetime import date, datetime, timezone
import enum
from .config import settings
from .database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AppointmentStatus(str, enum.Enum):
    SCHEDULED = "SCHEDULED"
    CONFIRMED = "CONFIRMED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    NO_SHOW = "NO_SHOW"


class Client(Base):
    __tablename__ = "clients"

    # Identity id issued by the auth layer
    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True, default=None, index=True)
    # WhatsApp number used for notifications
    contact: Mapped[Optional[str]] = mapped_column(String(120), nullable=True, index=True)
    consent_messages: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    appointments = relationship("Appointment", back_populates="client")


class Appointment(Base):
    __tablename__ = "appointments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    client_id: Mapped[str] = mapped_column(String(64), ForeignKey("clients.id"), nullable=False, index=True)
    order_item_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    scheduled_date: Mapped[date] = mapped_column(Date, index=True, nullable=False)
    # HH:MM, 24h, in the schedule timezone
    start_time: Mapped[str] = mapped_column(String(5), nullable=False)
    end_time: Mapped[str] = mapped_column(String(5), nullable=False)
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False)

    status: Mapped[AppointmentStatus] = mapped_column(
        Enum(AppointmentStatus, name="appointment_status"),
        default=AppointmentStatus.SCHEDULED,
        nullable=False,
        index=True,
    )

    client_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    admin_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    meeting_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    meeting_password: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)

    confirmed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    cancellation_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    reminder_sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)

    client = relationship("Client", back_populates="appointments")


class ScheduleSettings(Base):
    __tablename__ = "schedule_settings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    # [{"enabled": bool, "start": "HH:MM", "end": "HH:MM"}, ...] Monday first, 7 entries
    business_hours: Mapped[list] = mapped_column(JSON, nullable=False)
    slot_duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=lambda: settings.SLOT_MINUTES)
    buffer_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=lambda: settings.BUFFER_MINUTES)
    advance_booking_days: Mapped[int] = mapped_column(Integer, nullable=False, default=lambda: settings.ADVANCE_BOOKING_DAYS)
    min_notice_hours: Mapped[int] = mapped_column(Integer, nullable=False, default=lambda: settings.MIN_NOTICE_HOURS)
    # ISO dates ("2026-12-25")
    blocked_dates: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    timezone: Mapped[str] = mapped_column(String(64), nullable=False, default=lambda: settings.TIMEZONE)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)


class ScheduleDay(Base):
    """Lock target: one row per calendar date, locked while a booking for that date is written."""

    __tablename__ = "schedule_days"

    day: Mapped[date] = mapped_column(Date, primary_key=True)
