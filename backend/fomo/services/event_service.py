"""Event source: stores event snapshots and hands them to the read side."""
import logging
from datetime import timezone

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from fomo.models.event import EventRecord
from fomo.schemas.event import EventCreate, EventSnapshot
from fomo.schemas.response import ensure_aware

logger = logging.getLogger(__name__)


def create_event(db: Session, payload: EventCreate) -> EventRecord:
    starts_at = ensure_aware(payload.starts_at)
    ends_at = ensure_aware(payload.ends_at)
    if ends_at < starts_at:
        raise HTTPException(status_code=400, detail="ends_at must not be before starts_at")
    if db.query(EventRecord).filter(EventRecord.id == payload.id).first():
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=f"Event {payload.id} already exists")

    data = payload.model_dump(mode="json", exclude={"starts_at", "ends_at"})
    # Stored as UTC; SQLite keeps no offset.
    event = EventRecord(
        **data,
        starts_at=starts_at.astimezone(timezone.utc),
        ends_at=ends_at.astimezone(timezone.utc),
    )
    db.add(event)
    db.commit()
    db.refresh(event)
    logger.info("Created event '%s' (%s)", event.title, event.id)
    return event


def get_event(db: Session, event_id: str) -> EventSnapshot:
    event = db.query(EventRecord).filter(EventRecord.id == event_id).first()
    if not event:
        raise HTTPException(status_code=404, detail="Event not found")
    return EventSnapshot.model_validate(event)


def list_events(db: Session) -> list[EventSnapshot]:
    """Current snapshot of every event, ordered by start."""
    records = db.query(EventRecord).order_by(EventRecord.starts_at, EventRecord.id).all()
    return [EventSnapshot.model_validate(r) for r in records]
