"""Response vocabulary and the durable response-history record."""
import enum
from typing import Optional, Union

from sqlalchemy import Column, String, DateTime, Enum as SAEnum

from fomo.database import Base


class ResponseValue(str, enum.Enum):
    going = "going"
    participe = "participe"
    interested = "interested"
    maybe = "maybe"
    not_interested = "not_interested"
    not_there = "not_there"
    cleared = "cleared"
    seen = "seen"
    invited = "invited"


# Legacy values still present in older history rows.
LEGACY_ALIASES = {
    ResponseValue.participe: ResponseValue.going,
    ResponseValue.maybe: ResponseValue.interested,
    ResponseValue.not_there: ResponseValue.not_interested,
}

# Markers that are recorded in history but are not a standing reaction.
PASSIVE_RESPONSES = frozenset({ResponseValue.seen, ResponseValue.invited})

_NULL_SPELLINGS = ("", "null")


def normalize_response(value: Union[ResponseValue, str, None]) -> Optional[ResponseValue]:
    """Parse a raw response value; empty and ``"null"`` mean no response.

    Raises ValueError for anything outside the vocabulary.
    """
    if value is None or isinstance(value, ResponseValue):
        return value
    raw = str(value).strip().lower()
    if raw in _NULL_SPELLINGS:
        return None
    try:
        return ResponseValue(raw)
    except ValueError:
        raise ValueError(f"Invalid response value: {value!r}") from None


def canonical_response(value: Union[ResponseValue, str, None]) -> Optional[ResponseValue]:
    """Normalize and fold legacy aliases onto their current value."""
    response = normalize_response(value)
    return LEGACY_ALIASES.get(response, response)


class ResponseRecord(Base):
    __tablename__ = "response_history"

    id = Column(String(64), primary_key=True)
    user_id = Column(String(64), nullable=False, index=True)
    event_id = Column(String(64), nullable=False, index=True)
    initial_response = Column(SAEnum(ResponseValue), nullable=True)
    final_response = Column(SAEnum(ResponseValue), nullable=True)
    invited_by_user_id = Column(String(64), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)
