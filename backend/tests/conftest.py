"""Pytest fixtures — in-memory stores for the core, SQLite for the API."""
import random
from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest
import pytz
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from fastapi.testclient import TestClient

from fomo.database import Base, get_db
from fomo.main import app
from fomo.schemas.event import EventSnapshot
from fomo.schemas.response import ResponseHistoryEntry

# Import all models so they register with Base.metadata
from fomo.models.event import EventRecord        # noqa: F401
from fomo.models.response import ResponseRecord  # noqa: F401

SQLITE_URL = "sqlite:///./test.db"

BRUSSELS = pytz.timezone("Europe/Brussels")

# Wednesday 12 March 2025, 10:00 in Brussels (09:00 UTC). ISO week: Mon 10 – Sun 16.
NOW = BRUSSELS.localize(datetime(2025, 3, 12, 10, 0))


@pytest.fixture(scope="function")
def db_engine():
    """Create a fresh SQLite engine for each test."""
    engine = create_engine(SQLITE_URL, connect_args={"check_same_thread": False})

    # Enable WAL mode for better concurrency
    @event.listens_for(engine, "connect")
    def _set_sqlite_pragma(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()

    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def db(db_engine):
    """Yield a database session, closed after the test."""
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(scope="function")
def session_factory(db_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture(scope="function")
def client(db_engine):
    """FastAPI TestClient with the database dependency overridden to use SQLite."""
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)

    def _override_get_db():
        session = TestingSession()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Helpers: in-memory builders
# ---------------------------------------------------------------------------
def local(year: int, month: int, day: int, hour: int = 12, minute: int = 0) -> datetime:
    """Brussels wall-clock time as an aware datetime."""
    return BRUSSELS.localize(datetime(year, month, day, hour, minute))


def make_event(event_id: str, start: Optional[datetime] = None, hours: int = 2, **fields) -> EventSnapshot:
    """Helper — build an EventSnapshot starting at ``start`` (default: tomorrow noon)."""
    start = start or local(2025, 3, 13)
    data = {"id": event_id, "title": f"Event {event_id}", "starts_at": start, "ends_at": start + timedelta(hours=hours)}
    data.update(fields)
    return EventSnapshot(**data)


def make_entry(
    user_id: str,
    event_id: str,
    final: Optional[str],
    created_at: datetime,
    initial: Optional[str] = None,
    entry_id: Optional[str] = None,
) -> ResponseHistoryEntry:
    """Helper — build a history entry with an explicit timestamp."""
    return ResponseHistoryEntry(
        id=entry_id or f"resp_{int(created_at.timestamp() * 1000)}_{random.randint(0, 10**9):09d}",
        user_id=user_id,
        event_id=event_id,
        initial_response=initial,
        final_response=final,
        created_at=created_at,
    )


# ---------------------------------------------------------------------------
# Helpers: API
# ---------------------------------------------------------------------------
def create_test_event(client: TestClient, event_id: str, start: datetime, hours: int = 2, **fields) -> dict:
    """Helper — POST /api/events and return response JSON."""
    payload = {
        "id": event_id,
        "title": fields.pop("title", f"Event {event_id}"),
        "starts_at": start.isoformat(),
        "ends_at": (start + timedelta(hours=hours)).isoformat(),
    }
    payload.update(fields)
    resp = client.post("/api/events/", json=payload)
    assert resp.status_code == 201, resp.text
    return resp.json()


def post_response(client: TestClient, user_id: str, event_id: str, final: Optional[str], **fields) -> dict:
    """Helper — POST /api/responses and return response JSON."""
    payload = {"user_id": user_id, "event_id": event_id, "final_response": final}
    payload.update(fields)
    resp = client.post("/api/responses/", json=payload)
    assert resp.status_code == 201, resp.text
    return resp.json()


def utc_now() -> datetime:
    return datetime.now(timezone.utc)
