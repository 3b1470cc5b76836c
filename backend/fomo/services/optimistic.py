"""Optimistic mutation engine.

set_response appends to the local store synchronously, so every read (filters,
counts, calendar) sees the change immediately, then forwards the entry to a
remote sink. A failed submission rolls back only the entry it created, and
only while that entry is still the latest one for its (user, event) pair.
"""
import asyncio
import enum
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, Protocol

from fomo.models.response import ResponseValue, normalize_response
from fomo.schemas.response import ResponseHistoryEntry
from fomo.services.history_store import ResponseHistoryStore
from fomo.services.reconciliation import toggle_response

logger = logging.getLogger(__name__)


class ResponseSink(Protocol):
    """Remote persistence collaborator. ``submit`` raises on failure."""

    async def submit(self, entry: ResponseHistoryEntry) -> None: ...


class MutationStatus(str, enum.Enum):
    queued = "queued"
    submitted = "submitted"
    confirmed = "confirmed"
    rolled_back = "rolled_back"
    superseded = "superseded"  # failed, but a newer entry already replaced it


@dataclass
class PendingMutation:
    """Command object: exactly the entry one set_response call appended."""

    entry: ResponseHistoryEntry
    status: MutationStatus = MutationStatus.queued
    task: Optional[asyncio.Task] = field(default=None, repr=False)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _truncate_to_millis(instant: datetime) -> datetime:
    return instant.replace(microsecond=instant.microsecond - instant.microsecond % 1000)


class OptimisticMutationEngine:
    def __init__(
        self,
        store: ResponseHistoryStore,
        sink: ResponseSink,
        clock: Callable[[], datetime] = _utc_now,
    ):
        self.store = store
        self.sink = sink
        self.clock = clock
        self._queue: list[PendingMutation] = []
        self._tasks: set[asyncio.Task] = set()

    @property
    def pending(self) -> list[PendingMutation]:
        """Mutations appended locally but not yet handed to the sink."""
        return list(self._queue)

    @property
    def in_flight(self) -> list[asyncio.Task]:
        """Submissions scheduled on a running loop that have not finished yet."""
        return list(self._tasks)

    def _next_timestamp(self, previous: Optional[ResponseHistoryEntry]) -> datetime:
        created_at = _truncate_to_millis(self.clock())
        # A later call must always sort after the entry it supersedes.
        if previous is not None and created_at <= previous.created_at:
            created_at = previous.created_at + timedelta(milliseconds=1)
        return created_at

    def set_response(
        self,
        user_id: str,
        event_id: str,
        final_response,
        invited_by_user_id: Optional[str] = None,
    ) -> PendingMutation:
        """Append a new entry now and schedule its remote submission."""
        final = normalize_response(final_response)
        previous = self.store.latest(user_id, event_id)
        initial = previous.final_response if previous else None

        entry = ResponseHistoryEntry.create(
            user_id=user_id,
            event_id=event_id,
            initial_response=initial,
            final_response=final,
            created_at=self._next_timestamp(previous),
            invited_by_user_id=invited_by_user_id,
        )
        self.store.append(entry)
        logger.info("Optimistic response %s for user %s on event %s: %s -> %s",
                    entry.id, user_id, event_id, initial, final)

        pending = PendingMutation(entry=entry)
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No running loop: submitted on the next flush().
            self._queue.append(pending)
        else:
            pending.task = loop.create_task(self.submit(pending))
            # The loop only keeps a weak reference to its tasks.
            self._tasks.add(pending.task)
            pending.task.add_done_callback(self._tasks.discard)
        return pending

    def toggle_response(self, user_id: str, event_id: str, requested) -> PendingMutation:
        """Select ``requested``, or clear it when it is already the resolved response."""
        requested = normalize_response(requested)
        current = self.store.resolve(user_id, event_id)
        return self.set_response(user_id, event_id, toggle_response(current, requested))

    async def submit(self, pending: PendingMutation) -> bool:
        """Forward one mutation; returns False (after rollback) when the sink fails."""
        pending.status = MutationStatus.submitted
        try:
            await self.sink.submit(pending.entry)
        except Exception as exc:
            logger.warning("Remote persistence failed for response %s: %s", pending.entry.id, exc)
            self.rollback(pending)
            return False
        pending.status = MutationStatus.confirmed
        return True

    async def flush(self) -> list[bool]:
        """Submit every queued mutation, in the order they were appended, then drain.

        Returns the outcome of each queued mutation.
        """
        queued, self._queue = self._queue, []
        results = []
        for pending in queued:
            results.append(await self.submit(pending))
        await self.drain()
        return results

    async def drain(self) -> list[bool]:
        """Wait for every in-flight submission (and its rollback) to finish."""
        results = []
        while self._tasks:
            results.extend(await asyncio.gather(*list(self._tasks)))
        return results

    def rollback(self, pending: PendingMutation) -> bool:
        """Remove ``pending.entry`` if it is still the latest entry for its pair."""
        user_id, event_id = pending.entry.pair
        latest = self.store.latest(user_id, event_id)
        if latest is None or latest.id != pending.entry.id:
            pending.status = MutationStatus.superseded
            logger.info("Skipping rollback of %s: superseded by a newer response", pending.entry.id)
            return False
        self.store.remove_last(user_id, event_id)
        pending.status = MutationStatus.rolled_back
        logger.warning("Rolled back response %s for user %s on event %s", pending.entry.id, user_id, event_id)
        return True
