"""Response history API routes: the persistence endpoint for optimistic clients."""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from fomo.database import get_db
from fomo.schemas.response import ResponseCreate, ResponseHistoryEntry
from fomo.services import response_service

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/", response_model=ResponseHistoryEntry, status_code=status.HTTP_201_CREATED)
def append_response(payload: ResponseCreate, db: Session = Depends(get_db)):
    """Append one entry to the response history."""
    return response_service.record_response(db, payload)


@router.get("/", response_model=list[ResponseHistoryEntry])
def list_responses(
    user_id: Optional[str] = Query(None),
    event_id: Optional[str] = Query(None),
    db: Session = Depends(get_db),
):
    """Full history, oldest first, optionally narrowed to a user and/or an event."""
    return response_service.list_responses(db, user_id=user_id, event_id=event_id)


@router.get("/latest", response_model=dict[str, ResponseHistoryEntry])
def latest_responses(user_id: str = Query(...), db: Session = Depends(get_db)):
    """Latest entry per event for one user."""
    store = response_service.load_store(db, user_id=user_id)
    return store.latest_by_event(user_id)
