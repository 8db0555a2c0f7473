# tarot_agenda/config.py
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ===== App =====
    APP_NAME: str = "tarot_agenda"
    ENV: str = "dev"
    # Single zone for every date/time the engine reads or writes
    TIMEZONE: str = "America/Sao_Paulo"

    # ===== DB =====
    # Production sets DATABASE_URL to Postgres; local runs fall back to SQLite.
    DATABASE_URL: str = "sqlite:///./tarot_agenda.db"

    DB_POOL_SIZE: int = 2
    DB_MAX_OVERFLOW: int = 5
    DB_POOL_TIMEOUT: int = 30
    DB_POOL_RECYCLE: int = 1800  # 30 min

    # ===== Twilio =====
    TWILIO_ACCOUNT_SID: Optional[str] = None
    TWILIO_AUTH_TOKEN: Optional[str] = None
    TWILIO_WHATSAPP_FROM: Optional[str] = None

    # True = log messages instead of sending them
    DRY_RUN: bool = False

    # ===== Default schedule =====
    # Used until an admin saves a schedule_settings record.
    SCHEDULE_OPEN: str = "09:00"
    SCHEDULE_CLOSE: str = "18:00"
    # Comma separated weekday numbers, Monday = 0
    SCHEDULE_OPEN_WEEKDAYS: str = "0,1,2,3,4"
    SLOT_MINUTES: int = 30
    BUFFER_MINUTES: int = 15
    ADVANCE_BOOKING_DAYS: int = 30
    MIN_NOTICE_HOURS: int = 24

    # ===== Reminders =====
    REMINDERS_ENABLED: bool = True
    REMINDER_HOURS_BEFORE: int = 24

    # ===== Admin =====
    ADMIN_TOKEN: Optional[str] = None

    def open_weekdays(self) -> set[int]:
        """Parses SCHEDULE_OPEN_WEEKDAYS ("0,1,2") into a set of weekday numbers."""
        out: set[int] = set()
        for part in self.SCHEDULE_OPEN_WEEKDAYS.split(","):
            part = part.strip()
            if not part:
                continue
            day = int(part)
            if not 0 <= day <= 6:
                raise ValueError(f"Invalid SCHEDULE_OPEN_WEEKDAYS value: {part!r}")
            out.add(day)
        return out


settings = Settings()
