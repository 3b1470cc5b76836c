"""Capture/reconciliation for an event detail view.

The view captures the resolved response when it opens and decides, when it
closes, what single entry (if any) to persist:

    initial   current    emitted
    -------   -------    -------
    None      None       seen
    invited   invited    seen
    a         b (a!=b)   b
    a         a          nothing

The close path runs during UI teardown, so it never raises.
"""
import enum
import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

from fomo.models.response import PASSIVE_RESPONSES, ResponseValue, normalize_response
from fomo.services.history_store import ResponseHistoryStore

logger = logging.getLogger(__name__)

Emitter = Callable[[str, str, Optional[ResponseValue]], Any]


class SessionState(str, enum.Enum):
    unopened = "unopened"
    opened = "opened"
    closed = "closed"


@dataclass(frozen=True)
class Reconciliation:
    """The single entry a close decided to persist."""

    response: Optional[ResponseValue]


def reconcile(
    initial: Optional[ResponseValue],
    current: Optional[ResponseValue],
) -> Optional[Reconciliation]:
    """Diff the open-state against the close-state; None means persist nothing."""
    if initial is None and current is None:
        return Reconciliation(ResponseValue.seen)
    if initial == ResponseValue.invited and current == ResponseValue.invited:
        return Reconciliation(ResponseValue.seen)
    if current != initial:
        return Reconciliation(current)
    return None


def toggle_response(
    current: Optional[ResponseValue],
    requested: ResponseValue,
) -> ResponseValue:
    """Response button semantics: pressing the active response clears it."""
    return ResponseValue.cleared if current == requested else requested


class CaptureSession:
    """One open/close cycle of a detail view for a single event."""

    def __init__(self, store: ResponseHistoryStore, emit: Emitter):
        self.store = store
        self.emit = emit
        self.state = SessionState.unopened
        self.initial: Optional[ResponseValue] = None
        self.current: Optional[ResponseValue] = None

    def on_open(self, user_id: str, event_id: str) -> None:
        if self.state != SessionState.unopened:
            logger.debug("Ignoring re-open of capture session for event %s", event_id)
            return
        try:
            resolved = self.store.resolve(user_id, event_id)
        except Exception:
            logger.exception("Could not resolve response for user %s on event %s", user_id, event_id)
            resolved = None
        self.initial = resolved
        # seen/invited are markers, not a selection the buttons can show.
        self.current = None if resolved in PASSIVE_RESPONSES else resolved
        self.state = SessionState.opened

    def on_local_selection_change(self, value) -> None:
        self.current = normalize_response(value)

    def on_close(self, user_id: str, event_id: str) -> Optional[Reconciliation]:
        if self.state != SessionState.opened:
            logger.debug("Close without open for event %s; nothing emitted", event_id)
            return None
        self.state = SessionState.closed
        try:
            current = self.current
            if current is None:
                current = self.store.resolve(user_id, event_id)
            outcome = reconcile(self.initial, current)
            if outcome is not None:
                self.emit(user_id, event_id, outcome.response)
                logger.info(
                    "View of event %s by %s closed: %s -> %s",
                    event_id, user_id, self.initial, outcome.response,
                )
            return outcome
        except Exception:
            logger.exception("Reconciliation failed for user %s on event %s; nothing persisted", user_id, event_id)
            return None
