"""In-memory, append-only response history.

Resolution rules:
- the latest entry for a (user, event) pair is the one with the greatest
  ``created_at``; identical timestamps fall back to the greatest ``id``
- the only removal path is ``remove_last`` (optimistic rollback)
"""
import logging
from typing import Iterable, Optional

from fomo.models.response import ResponseValue
from fomo.schemas.response import ResponseHistoryEntry

logger = logging.getLogger(__name__)


class ResponseHistoryStore:
    """Append-only collection of ResponseHistoryEntry, indexed by (user, event)."""

    def __init__(self, entries: Optional[Iterable[ResponseHistoryEntry]] = None):
        self._entries: list[ResponseHistoryEntry] = []
        self._by_pair: dict[tuple[str, str], list[ResponseHistoryEntry]] = {}
        for entry in entries or []:
            self.append(entry)

    @classmethod
    def from_records(cls, records: Iterable) -> "ResponseHistoryStore":
        """Hydrate from ORM rows (or anything with matching attributes)."""
        return cls(ResponseHistoryEntry.model_validate(r) for r in records)

    def __len__(self) -> int:
        return len(self._entries)

    def entries(self) -> list[ResponseHistoryEntry]:
        """Snapshot in insertion order."""
        return list(self._entries)

    def append(self, entry: ResponseHistoryEntry) -> None:
        if not entry.user_id or not entry.event_id:
            raise ValueError("Response history entries need a user_id and an event_id")
        self._entries.append(entry)
        self._by_pair.setdefault(entry.pair, []).append(entry)

    def history(self, user_id: str, event_id: str) -> list[ResponseHistoryEntry]:
        """All entries for the pair, oldest first."""
        return sorted(self._by_pair.get((user_id, event_id), []), key=ResponseHistoryEntry.order_key)

    def latest(self, user_id: str, event_id: str) -> Optional[ResponseHistoryEntry]:
        candidates = self._by_pair.get((user_id, event_id))
        if not candidates:
            return None
        return max(candidates, key=ResponseHistoryEntry.order_key)

    def resolve(self, user_id: Optional[str], event_id: str) -> Optional[ResponseValue]:
        """Resolved response for the pair; None without history or without a user."""
        if not user_id:
            return None
        entry = self.latest(user_id, event_id)
        return entry.final_response if entry else None

    def latest_by_event(self, user_id: str) -> dict[str, ResponseHistoryEntry]:
        result: dict[str, ResponseHistoryEntry] = {}
        for (uid, event_id), candidates in self._by_pair.items():
            if uid == user_id and candidates:
                result[event_id] = max(candidates, key=ResponseHistoryEntry.order_key)
        return result

    def latest_by_user(self, event_id: str) -> dict[str, ResponseHistoryEntry]:
        result: dict[str, ResponseHistoryEntry] = {}
        for (user_id, eid), candidates in self._by_pair.items():
            if eid == event_id and candidates:
                result[user_id] = max(candidates, key=ResponseHistoryEntry.order_key)
        return result

    def remove_last(self, user_id: str, event_id: str) -> Optional[ResponseHistoryEntry]:
        """Drop the latest entry for the pair and return it (None when empty)."""
        target = self.latest(user_id, event_id)
        if target is None:
            return None
        self._by_pair[target.pair].remove(target)
        if not self._by_pair[target.pair]:
            del self._by_pair[target.pair]
        self._entries.remove(target)
        logger.info("Removed response %s for user %s on event %s", target.id, user_id, event_id)
        return target
