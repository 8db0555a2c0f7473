from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from datetime import date, datetime
from typing import Optional

from .models import AppointmentStatus
from .services.slots import parse_hhmm


def _check_hhmm(v: Optional[str]) -> Optional[str]:
    if v is not None:
        parse_hhmm(v)
    return v


class ClientIn(BaseModel):
    name: Optional[str] = None
    contact: Optional[str] = None
    consent_messages: bool = True


class TimeRangeIn(BaseModel):
    date: date
    start_time: str
    end_time: str

    @field_validator("start_time", "end_time")
    @classmethod
    def valid_hhmm(cls, v):
        return _check_hhmm(v)

    @model_validator(mode="after")
    def start_before_end(self):
        if parse_hhmm(self.start_time) >= parse_hhmm(self.end_time):
            raise ValueError("start_time must be before end_time")
        return self


class BookRequest(TimeRangeIn):
    client: Optional[ClientIn] = None
    client_notes: Optional[str] = Field(default=None, max_length=2000)
    order_item_id: Optional[str] = None


class RescheduleRequest(TimeRangeIn):
    pass


class CancelRequest(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=1000)


class StatusRequest(BaseModel):
    status: AppointmentStatus


class AppointmentUpdate(BaseModel):
    admin_notes: Optional[str] = None
    meeting_url: Optional[str] = Field(default=None, max_length=500)
    meeting_password: Optional[str] = Field(default=None, max_length=120)


class AppointmentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    client_id: str
    order_item_id: Optional[str] = None
    scheduled_date: date
    start_time: str
    end_time: str
    duration_minutes: int
    status: AppointmentStatus
    client_notes: Optional[str] = None
    admin_notes: Optional[str] = None
    meeting_url: Optional[str] = None
    meeting_password: Optional[str] = None
    confirmed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    reminder_sent_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class PageMeta(BaseModel):
    total: int
    page: int
    limit: int
    total_pages: int


class AppointmentPage(BaseModel):
    data: list[AppointmentOut]
    meta: PageMeta


class SlotOut(BaseModel):
    start: str
    end: str
    available: bool


class SlotsResponse(BaseModel):
    date: date
    slots: list[SlotOut]


class DayHoursIn(BaseModel):
    enabled: bool = False
    start: Optional[str] = None
    end: Optional[str] = None

    @field_validator("start", "end")
    @classmethod
    def valid_hhmm(cls, v):
        return _check_hhmm(v)

    @model_validator(mode="after")
    def open_days_need_hours(self):
        if self.enabled and (not self.start or not self.end):
            raise ValueError("enabled days need start and end")
        return self


class DayHoursOut(DayHoursIn):
    day: str


class ScheduleSettingsIn(BaseModel):
    business_hours: list[DayHoursIn] = Field(min_length=7, max_length=7)
    slot_duration_minutes: int = Field(gt=0, le=24 * 60)
    buffer_minutes: int = Field(default=0, ge=0)
    advance_booking_days: int = Field(ge=0)
    min_notice_hours: int = Field(ge=0)
    blocked_dates: list[date] = []
    timezone: str


class ScheduleSettingsOut(BaseModel):
    business_hours: list[DayHoursOut]
    slot_duration_minutes: int
    buffer_minutes: int
    advance_booking_days: int
    min_notice_hours: int
    blocked_dates: list[date]
    timezone: str
