"""
Pytest fixtures for testing
"""
from datetime import datetime
from zoneinfo import ZoneInfo

import pytest
from sqlalchemy import create_engine, event, JSON
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.dialects.postgresql import JSONB
from app.infrastructure.db.session import Base
from app.infrastructure.db import models  # noqa: F401
from app.domain.calendar import CivilClock

KARACHI = ZoneInfo("Asia/Karachi")


@pytest.fixture
def db_engine():
    """Create in-memory SQLite engine for tests, with JSONB→JSON mapping."""
    engine = create_engine("sqlite:///:memory:")

    @event.listens_for(engine, "connect")
    def _set_sqlite_pragma(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    # SQLite has no JSONB, remap to JSON for tests
    for table in Base.metadata.tables.values():
        for col in table.columns:
            if isinstance(col.type, JSONB):
                col.type = JSON()
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(db_engine) -> Session:
    """Create database session for tests"""
    SessionLocal = sessionmaker(bind=db_engine, autoflush=False)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


def _pinned_clock(year, month, day, hour=13, minute=0) -> CivilClock:
    instant = datetime(year, month, day, hour, minute, tzinfo=KARACHI)
    return CivilClock(timezone="Asia/Karachi", cutoff_hour=12, now_fn=lambda: instant)


@pytest.fixture
def make_clock():
    """Factory: clock pinned to a civil instant in Asia/Karachi"""
    return _pinned_clock


@pytest.fixture
def clock() -> CivilClock:
    """28-11-2025 13:00 Karachi, after the rollover cutoff"""
    return _pinned_clock(2025, 11, 28, 13)


@pytest.fixture
def morning_clock() -> CivilClock:
    """28-11-2025 09:00 Karachi, before the rollover cutoff"""
    return _pinned_clock(2025, 11, 28, 9)
