"""Response persistence: the durable side of the response history.

Every write is an append: a response change is a new row, never an update.
"""
import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from fomo.models.response import ResponseRecord
from fomo.schemas.response import ResponseCreate, ensure_aware, new_entry_id
from fomo.services.history_store import ResponseHistoryStore

logger = logging.getLogger(__name__)


def record_response(db: Session, payload: ResponseCreate) -> ResponseRecord:
    """Append one history row; client-generated ids are kept so retries can be detected."""
    if not payload.user_id or not payload.event_id:
        raise HTTPException(status_code=400, detail="user_id and event_id are required")

    now = datetime.now(timezone.utc)
    entry_id = payload.id or new_entry_id(now)
    if db.query(ResponseRecord).filter(ResponseRecord.id == entry_id).first():
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Response {entry_id} was already recorded",
        )

    record = ResponseRecord(
        id=entry_id,
        user_id=payload.user_id,
        event_id=payload.event_id,
        initial_response=payload.initial_response,
        final_response=payload.final_response,
        invited_by_user_id=payload.invited_by_user_id,
        created_at=ensure_aware(payload.created_at).astimezone(timezone.utc) if payload.created_at else now,
    )
    db.add(record)
    db.commit()
    db.refresh(record)
    logger.info(
        "Recorded response %s: user %s on event %s (%s -> %s)",
        record.id, record.user_id, record.event_id,
        payload.initial_response, payload.final_response,
    )
    return record


def list_responses(
    db: Session,
    user_id: Optional[str] = None,
    event_id: Optional[str] = None,
) -> list[ResponseRecord]:
    query = db.query(ResponseRecord)
    if user_id:
        query = query.filter(ResponseRecord.user_id == user_id)
    if event_id:
        query = query.filter(ResponseRecord.event_id == event_id)
    return query.order_by(ResponseRecord.created_at, ResponseRecord.id).all()


def load_store(
    db: Session,
    user_id: Optional[str] = None,
    event_id: Optional[str] = None,
) -> ResponseHistoryStore:
    """Snapshot of persisted history as an in-memory store."""
    return ResponseHistoryStore.from_records(list_responses(db, user_id=user_id, event_id=event_id))
