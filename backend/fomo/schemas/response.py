"""Pydantic schemas for response-history entries."""
from __future__ import annotations
import random
import string
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, field_validator

from fomo.models.response import ResponseValue, normalize_response

# Wire sentinel for "not an invitation".
NO_INVITER = "none"

_ID_ALPHABET = string.ascii_lowercase + string.digits


def new_entry_id(now: datetime) -> str:
    """Locally unique id: epoch milliseconds plus a random base36 suffix."""
    suffix = "".join(random.choices(_ID_ALPHABET, k=9))
    return f"resp_{int(now.timestamp() * 1000)}_{suffix}"


def format_timestamp(instant: datetime) -> str:
    """ISO-8601 with millisecond precision and explicit offset."""
    return instant.isoformat(timespec="milliseconds")


def ensure_aware(value: datetime) -> datetime:
    # SQLite drops the offset; stored instants are UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _inviter_or_none(value):
    if value is None or str(value).strip().lower() in ("", NO_INVITER):
        return None
    return value


class ResponseHistoryEntry(BaseModel):
    """One immutable transition in a user's reaction to an event."""

    id: str
    user_id: str
    event_id: str
    initial_response: Optional[ResponseValue] = None
    final_response: Optional[ResponseValue] = None
    invited_by_user_id: Optional[str] = None
    created_at: datetime

    model_config = {"from_attributes": True, "frozen": True}

    @field_validator("initial_response", "final_response", mode="before")
    @classmethod
    def _parse_response(cls, value):
        return normalize_response(value)

    @field_validator("invited_by_user_id", mode="before")
    @classmethod
    def _parse_inviter(cls, value):
        return _inviter_or_none(value)

    @field_validator("user_id", "event_id")
    @classmethod
    def _required(cls, value: str) -> str:
        if not value:
            raise ValueError("must not be empty")
        return value

    @field_validator("created_at")
    @classmethod
    def _aware(cls, value: datetime) -> datetime:
        return ensure_aware(value)

    @classmethod
    def create(
        cls,
        user_id: str,
        event_id: str,
        initial_response: Optional[ResponseValue],
        final_response: Optional[ResponseValue],
        created_at: datetime,
        invited_by_user_id: Optional[str] = None,
    ) -> ResponseHistoryEntry:
        return cls(
            id=new_entry_id(created_at),
            user_id=user_id,
            event_id=event_id,
            initial_response=initial_response,
            final_response=final_response,
            invited_by_user_id=invited_by_user_id,
            created_at=created_at,
        )

    @property
    def pair(self) -> tuple[str, str]:
        return (self.user_id, self.event_id)

    def order_key(self) -> tuple[datetime, str]:
        """Ordering used everywhere: newest ``created_at`` wins, then greatest ``id``."""
        return (self.created_at, self.id)

    def to_wire(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "event_id": self.event_id,
            "initial_response": self.initial_response.value if self.initial_response else None,
            "final_response": self.final_response.value if self.final_response else None,
            "invited_by_user_id": self.invited_by_user_id or NO_INVITER,
            "created_at": format_timestamp(self.created_at),
        }


class ResponseCreate(BaseModel):
    """Payload accepted by the persistence endpoint."""

    user_id: str
    event_id: str
    initial_response: Optional[ResponseValue] = None
    final_response: Optional[ResponseValue] = None
    invited_by_user_id: Optional[str] = None
    id: Optional[str] = None
    created_at: Optional[datetime] = None

    @field_validator("initial_response", "final_response", mode="before")
    @classmethod
    def _parse_response(cls, value):
        return normalize_response(value)

    @field_validator("invited_by_user_id", mode="before")
    @classmethod
    def _parse_inviter(cls, value):
        return _inviter_or_none(value)
