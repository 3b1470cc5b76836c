"""Event API routes for the read side: filtered lists, calendar, filter-bar counts."""
import logging
from datetime import datetime
from typing import Optional

import pytz
from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import ValidationError
from sqlalchemy.orm import Session

from fomo.config import settings
from fomo.database import get_db
from fomo.schemas.event import (
    CalendarOut, CalendarPeriodOut, EventCreate, EventSnapshot, EventView, FilterOptionsOut, GuestsOut,
)
from fomo.services import event_service, response_service
from fomo.services.calendar_service import get_timezone, group_by_periods
from fomo.services.filter_service import FilterConfig, FilterContext, apply_filters, filter_options, group_users_by_response
from fomo.services.history_store import ResponseHistoryStore

logger = logging.getLogger(__name__)
router = APIRouter()


def _tristate(value: Optional[str], name: str):
    if value is None or value == "all":
        return "all"
    if value.lower() in ("true", "1"):
        return True
    if value.lower() in ("false", "0"):
        return False
    raise HTTPException(status_code=400, detail=f"Invalid {name}: {value} (expected true, false or all)")


def _build_context(db: Session, user_id: Optional[str], timezone: str, now: Optional[datetime]) -> FilterContext:
    try:
        get_timezone(timezone)
    except pytz.UnknownTimeZoneError:
        raise HTTPException(status_code=400, detail=f"Unknown timezone: {timezone}")
    store = response_service.load_store(db, user_id=user_id) if user_id else ResponseHistoryStore()
    return FilterContext(
        store=store,
        user_id=user_id,
        now=now or datetime.now(pytz.utc),
        timezone=timezone,
    )


def filter_params(
    q: Optional[str] = Query(None, description="Free-text search over every field"),
    tags: list[str] = Query([]),
    is_public: Optional[str] = Query(None),
    is_online: Optional[str] = Query(None),
    organizer_id: Optional[str] = Query(None),
    period: Optional[str] = Query(None),
    responses: Optional[list[str]] = Query(None, description="Response buckets; 'null' for new events"),
    exclude_past: bool = Query(False),
) -> FilterConfig:
    try:
        return FilterConfig(
            query=q,
            tags=tags,
            is_public=_tristate(is_public, "is_public"),
            is_online=_tristate(is_online, "is_online"),
            organizer_id=organizer_id,
            period=period,
            responses=responses,
            exclude_past=exclude_past,
        )
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=f"Invalid filter: {exc.errors()[0]['msg']}")


def context_params(
    user_id: Optional[str] = Query(None, description="Viewer whose responses drive the response filter"),
    timezone: str = Query(settings.DEFAULT_TIMEZONE),
    now: Optional[datetime] = Query(None, description="Reference instant; defaults to the current time"),
    db: Session = Depends(get_db),
) -> FilterContext:
    return _build_context(db, user_id, timezone, now)


@router.post("/", response_model=EventSnapshot, status_code=status.HTTP_201_CREATED)
def create_event(payload: EventCreate, db: Session = Depends(get_db)):
    """Store an event snapshot in the event source."""
    return event_service.create_event(db, payload)


@router.get("/", response_model=list[EventView])
def list_events(
    config: FilterConfig = Depends(filter_params),
    context: FilterContext = Depends(context_params),
    db: Session = Depends(get_db),
):
    """Events visible under the given filters, with the viewer's response and period."""
    events = apply_filters(event_service.list_events(db), config, context)
    logger.info("Listed %d events for user %s", len(events), context.user_id)
    return [EventView(event=e, response=context.resolve(e), period=context.period_of(e).value) for e in events]


@router.get("/calendar", response_model=CalendarOut)
def calendar(
    config: FilterConfig = Depends(filter_params),
    context: FilterContext = Depends(context_params),
    db: Session = Depends(get_db),
):
    """Filtered events grouped into calendar periods."""
    events = apply_filters(event_service.list_events(db), config, context)
    grouping = group_by_periods(events, context.now, context.timezone)
    return CalendarOut(
        periods=[
            CalendarPeriodOut(
                key=p.key.value, label=p.label,
                start_date=p.start_date, end_date=p.end_date, events=p.events,
            )
            for p in grouping.periods
        ],
        total_events=grouping.total_events,
    )


@router.get("/filter-options", response_model=FilterOptionsOut)
def get_filter_options(
    config: FilterConfig = Depends(filter_params),
    context: FilterContext = Depends(context_params),
    db: Session = Depends(get_db),
):
    """Selectable options per filter-bar control, with live counts."""
    return FilterOptionsOut(**filter_options(event_service.list_events(db), config, context))


@router.get("/{event_id}", response_model=EventView)
def get_event(event_id: str, context: FilterContext = Depends(context_params), db: Session = Depends(get_db)):
    """Fetch one event with the viewer's resolved response and calendar bucket."""
    event = event_service.get_event(db, event_id)
    return EventView(event=event, response=context.resolve(event), period=context.period_of(event).value)


@router.get("/{event_id}/guests", response_model=GuestsOut)
def get_guests(event_id: str, db: Session = Depends(get_db)):
    """Each user's latest response to the event, grouped by response."""
    event_service.get_event(db, event_id)
    store = response_service.load_store(db, event_id=event_id)
    latest = sorted(store.latest_by_user(event_id).values(), key=lambda e: e.order_key())
    return GuestsOut(event_id=event_id, groups=group_users_by_response(latest))
