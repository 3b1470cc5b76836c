"""Pydantic schemas for Events and the derived views built over them."""
from __future__ import annotations
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator

from fomo.models.response import ResponseValue
from fomo.schemas.response import ResponseHistoryEntry, ensure_aware


class VenueComponents(BaseModel):
    street: Optional[str] = None
    address_number: Optional[str] = None
    postcode: Optional[str] = None
    place: Optional[str] = None
    region: Optional[str] = None
    country: Optional[str] = None
    country_code: Optional[str] = None


class Venue(BaseModel):
    name: str = ""
    address: str = ""
    lat: Optional[float] = None
    lng: Optional[float] = None
    components: Optional[VenueComponents] = None


class EventStats(BaseModel):
    going_count: int = 0
    interested_count: int = 0
    not_interested_count: int = 0
    total_responses: int = 0
    friends_going_count: int = 0
    friends_interested_count: int = 0


class EventSnapshot(BaseModel):
    """Read-only view of an event as supplied by the event source.

    ``starts_at``/``ends_at`` may be missing on malformed rows; such events
    never match a calendar period or a visibility filter.
    """

    id: str
    title: str = ""
    description: str = ""
    starts_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None
    venue: Optional[Venue] = None
    tags: list[str] = []
    organizer_id: Optional[str] = None
    organizer_name: Optional[str] = None
    is_public: Optional[bool] = None
    is_online: Optional[bool] = None
    price: Optional[str] = None
    ticket_url: Optional[str] = None
    cover_url: Optional[str] = None
    capacity: Optional[int] = None
    stats: EventStats = EventStats()

    model_config = {"from_attributes": True, "frozen": True}

    @field_validator("starts_at", "ends_at")
    @classmethod
    def _aware(cls, value: Optional[datetime]) -> Optional[datetime]:
        return ensure_aware(value) if value is not None else None

    @field_validator("tags", mode="before")
    @classmethod
    def _tags(cls, value):
        return [t for t in (value or []) if t is not None]

    @field_validator("stats", mode="before")
    @classmethod
    def _stats(cls, value):
        return value if value is not None else EventStats()

    @property
    def is_well_formed(self) -> bool:
        return bool(self.id) and self.starts_at is not None and self.ends_at is not None


class EventCreate(BaseModel):
    id: str
    title: str
    description: str = ""
    starts_at: datetime
    ends_at: datetime
    venue: Optional[Venue] = None
    tags: list[str] = []
    organizer_id: Optional[str] = None
    organizer_name: Optional[str] = None
    is_public: Optional[bool] = None
    is_online: Optional[bool] = None
    price: Optional[str] = None
    ticket_url: Optional[str] = None
    cover_url: Optional[str] = None
    capacity: Optional[int] = None
    stats: Optional[EventStats] = None


class EventView(BaseModel):
    """An event as shown to one user: its resolved response and calendar bucket."""

    event: EventSnapshot
    response: Optional[ResponseValue] = None
    period: str


class CalendarPeriodOut(BaseModel):
    key: str
    label: str
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    events: list[EventSnapshot] = []


class CalendarOut(BaseModel):
    periods: list[CalendarPeriodOut]
    total_events: int


class OptionCount(BaseModel):
    value: Optional[str] = None
    label: str
    count: int


class FilterOptionsOut(BaseModel):
    tags: list[OptionCount] = []
    organizers: list[OptionCount] = []
    periods: list[OptionCount] = []
    responses: list[OptionCount] = []


class GuestsOut(BaseModel):
    event_id: str
    groups: dict[str, list[ResponseHistoryEntry]]
