# tarot_agenda/database.py
from __future__ import annotations
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from .config import settings

DATABASE_URL: str | None = settings.DATABASE_URL
if not DATABASE_URL:
    raise RuntimeError("DATABASE_URL is not configured (check your .env).")

if DATABASE_URL.startswith("sqlite"):
    # Local SQLite file
    engine = create_engine(
        DATABASE_URL,
        connect_args={"check_same_thread": False},  # sessions are used from worker threads
        pool_pre_ping=True,
        future=True,
    )
else:
    # Postgres in production
    engine = create_engine(
        DATABASE_URL,
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_timeout=settings.DB_POOL_TIMEOUT,
        pool_recycle=settings.DB_POOL_RECYCLE,
        pool_pre_ping=True,
        future=True,
    )

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
    future=True,
)

Base = declarative_base()


def init_db():
    """
    Creates missing tables. Models are imported first so SQLAlchemy knows
    every table in the metadata.
    """
    from . import models  # noqa: F401
    Base.metadata.create_all(bind=engine)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
