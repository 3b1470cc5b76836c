"""Filter pipeline: pure predicates, their AND-composition, and option counts.

Each predicate returns True when its filter is inactive. ``apply_filters``
keeps the events matching every active predicate. ``count_by_option`` runs
the whole pipeline once per candidate option so a displayed count always
equals what selecting that option would show.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Iterable, Literal, Optional, Union

import pytz
from pydantic import BaseModel, field_validator

from fomo.config import settings
from fomo.models.response import ResponseValue, canonical_response, normalize_response
from fomo.schemas.event import EventSnapshot, OptionCount
from fomo.schemas.response import ResponseHistoryEntry
from fomo.services.calendar_service import PERIOD_LABELS, PERIOD_ORDER, PeriodKey, classify
from fomo.services.history_store import ResponseHistoryStore

logger = logging.getLogger(__name__)

TriState = Union[bool, Literal["all"]]

# Display labels for the response filter; None is "new", cleared is "no answer".
RESPONSE_LABELS = {
    None: "New",
    ResponseValue.going: "Going",
    ResponseValue.interested: "Interested",
    ResponseValue.not_interested: "Not interested",
    ResponseValue.cleared: "No answer",
}
_RESPONSE_ORDER = list(RESPONSE_LABELS)

# Keys of the response groups, in display order; "null" holds events with no response.
GROUP_KEYS = [
    "going", "participe", "interested", "maybe", "not_interested",
    "not_there", "seen", "cleared", "invited", "null",
]


class FilterConfig(BaseModel):
    """Filter-bar selection. Unset fields are inactive."""

    query: Optional[str] = None
    tags: list[str] = []
    is_public: TriState = "all"
    is_online: TriState = "all"
    organizer_id: Optional[str] = None
    period: Optional[PeriodKey] = None
    # Any of the listed response buckets (OR); None disables the filter.
    responses: Optional[list[Optional[ResponseValue]]] = None
    exclude_past: bool = False

    model_config = {"frozen": True}

    @field_validator("period", mode="before")
    @classmethod
    def _period(cls, value):
        if value in (None, "", "all"):
            return None
        # "other" is what undated events classify as; it is not a selectable period.
        if value in (PeriodKey.other, PeriodKey.other.value):
            raise ValueError("other is not a selectable period")
        return value

    @field_validator("responses", mode="before")
    @classmethod
    def _responses(cls, value):
        if value is None:
            return None
        return [response_option(normalize_response(v)) for v in value]


@dataclass
class FilterContext:
    """Everything the predicates read besides the event itself."""

    store: ResponseHistoryStore
    user_id: Optional[str] = None
    now: datetime = field(default_factory=lambda: datetime.now(pytz.utc))
    timezone: str = settings.DEFAULT_TIMEZONE

    def resolve(self, event: EventSnapshot) -> Optional[ResponseValue]:
        return self.store.resolve(self.user_id, event.id)

    def period_of(self, event: EventSnapshot) -> PeriodKey:
        return classify(event, self.now, self.timezone)


# ===== Matchers =====

def filter_query(item: Any, query: Optional[str]) -> bool:
    """Case-insensitive substring search through every string/number in ``item``."""
    if not query:
        return True
    q = query.strip().lower()
    if not q:
        return True
    return _contains(item, q)


def _contains(item: Any, q: str) -> bool:
    if item is None or isinstance(item, bool):
        return False
    if isinstance(item, str):
        return q in item.lower()
    if isinstance(item, (int, float)):
        return q in str(item).lower()
    if isinstance(item, BaseModel):
        return _contains(item.model_dump(mode="json"), q)
    if isinstance(item, dict):
        return any(_contains(v, q) for v in item.values())
    if isinstance(item, (list, tuple, set)):
        return any(_contains(v, q) for v in item)
    return False


def match_query(event: EventSnapshot, query: Optional[str]) -> bool:
    return filter_query(event, query)


def _clean_tag(tag: Optional[str]) -> str:
    return (tag or "").strip().lower()


def match_tags(event: EventSnapshot, tags: Optional[Iterable[str]]) -> bool:
    """AND semantics: every wanted tag is a substring of some event tag."""
    tags = list(tags or [])
    if not tags or "all" in tags:
        return True
    wanted = [t for t in map(_clean_tag, tags) if t]
    if not wanted:
        return True
    event_tags = [_clean_tag(t) for t in event.tags]
    return all(any(w in et for et in event_tags) for w in wanted)


def _match_flag(event: EventSnapshot, actual: Optional[bool], wanted: TriState) -> bool:
    if wanted == "all" or wanted is None:
        return True
    if not event.is_well_formed:
        return False
    # Missing data never excludes an event.
    if actual is None:
        return True
    return actual is wanted


def match_public(event: EventSnapshot, is_public: TriState) -> bool:
    return _match_flag(event, event.is_public, is_public)


def match_online(event: EventSnapshot, is_online: TriState) -> bool:
    return _match_flag(event, event.is_online, is_online)


def match_organizer(event: EventSnapshot, organizer_id: Optional[str]) -> bool:
    if not organizer_id:
        return True
    return event.organizer_id == organizer_id


def match_period(event: EventSnapshot, period: Optional[PeriodKey], context: FilterContext) -> bool:
    if period is None:
        return True
    if not event.is_well_formed:
        return False
    return context.period_of(event) == period


def response_option(resolved: Optional[ResponseValue]) -> Optional[ResponseValue]:
    """Fold a resolved response into its filter bucket.

    invited counts as new (None); seen counts as no answer (cleared);
    legacy aliases fold onto their current value.
    """
    canonical = canonical_response(resolved)
    if canonical == ResponseValue.invited:
        return None
    if canonical == ResponseValue.seen:
        return ResponseValue.cleared
    return canonical


def match_response(
    event: EventSnapshot,
    responses: Optional[list[Optional[ResponseValue]]],
    context: FilterContext,
) -> bool:
    if responses is None:
        return True
    return response_option(context.resolve(event)) in responses


# ===== Pipeline =====

def matches(event: EventSnapshot, config: FilterConfig, context: FilterContext) -> bool:
    if not (
        match_query(event, config.query)
        and match_tags(event, config.tags)
        and match_public(event, config.is_public)
        and match_online(event, config.is_online)
        and match_organizer(event, config.organizer_id)
        and match_period(event, config.period, context)
        and match_response(event, config.responses, context)
    ):
        return False
    if config.exclude_past and config.period != PeriodKey.past:
        return context.period_of(event) != PeriodKey.past
    return True


def apply_filters(
    events: Iterable[EventSnapshot],
    config: FilterConfig,
    context: FilterContext,
) -> list[EventSnapshot]:
    return [e for e in events if matches(e, config, context)]


# ===== Option counts =====

OptionExtractor = Callable[[EventSnapshot], Iterable[Any]]


def with_option(config: FilterConfig, field_name: str, option: Any) -> FilterConfig:
    """``config`` with ``option`` additionally selected on ``field_name``.

    Tags accumulate (AND); the response filter selects just that bucket;
    every other field is single-valued and is replaced.
    """
    if field_name == "tags":
        tags = list(config.tags) if "all" not in config.tags else []
        if option not in tags:
            tags.append(option)
        return config.model_copy(update={"tags": tags})
    if field_name == "responses":
        return config.model_copy(update={"responses": [option]})
    return config.model_copy(update={field_name: option})


def count_by_option(
    events: Iterable[EventSnapshot],
    option_extractor: OptionExtractor,
    config: FilterConfig,
    context: FilterContext,
    field_name: str,
    label: Optional[Callable[[Any], str]] = None,
) -> list[OptionCount]:
    """Per distinct option among ``events``, the number of events visible with it selected.

    Options are listed in order of first appearance.
    """
    events = list(events)
    options: list[Any] = []
    for event in events:
        for option in option_extractor(event):
            if option not in options:
                options.append(option)

    counts = []
    for option in options:
        selected = with_option(config, field_name, option)
        count = len(apply_filters(events, selected, context))
        value = option.value if hasattr(option, "value") else option
        counts.append(OptionCount(
            value=value,
            label=label(option) if label else str(value),
            count=count,
        ))
    return counts


def tag_options(event: EventSnapshot) -> list[str]:
    return [t for t in map(_clean_tag, event.tags) if t]


def organizer_options(event: EventSnapshot) -> list[str]:
    return [event.organizer_id] if event.organizer_id else []


def period_options(context: FilterContext) -> OptionExtractor:
    def extract(event: EventSnapshot) -> list[PeriodKey]:
        key = context.period_of(event)
        return [] if key == PeriodKey.other else [key]
    return extract


def response_options(context: FilterContext) -> OptionExtractor:
    def extract(event: EventSnapshot) -> list[Optional[ResponseValue]]:
        return [response_option(context.resolve(event))]
    return extract


def filter_options(
    events: Iterable[EventSnapshot],
    config: FilterConfig,
    context: FilterContext,
) -> dict[str, list[OptionCount]]:
    """Options and live counts for every filter-bar control; zero counts are dropped."""
    events = list(events)
    organizer_names: dict[str, str] = {}
    for event in events:
        if event.organizer_id and event.organizer_name:
            organizer_names.setdefault(event.organizer_id, event.organizer_name)

    tags = count_by_option(events, tag_options, config, context, "tags")
    organizers = count_by_option(
        events, organizer_options, config, context, "organizer_id",
        label=lambda oid: organizer_names.get(oid) or oid,
    )
    periods = count_by_option(
        events, period_options(context), config, context, "period",
        label=lambda key: PERIOD_LABELS[key],
    )
    responses = count_by_option(
        events, response_options(context), config, context, "responses",
        label=lambda value: RESPONSE_LABELS.get(value, str(value)),
    )

    tags.sort(key=lambda o: (-o.count, o.value))
    organizers.sort(key=lambda o: (-o.count, o.label.lower()))
    periods.sort(key=lambda o: PERIOD_ORDER[PeriodKey(o.value)])
    responses.sort(key=lambda o: _RESPONSE_ORDER.index(normalize_response(o.value)))

    result = {
        "tags": [o for o in tags if o.count > 0],
        "organizers": [o for o in organizers if o.count > 0],
        "periods": [o for o in periods if o.count > 0],
        "responses": [o for o in responses if o.count > 0],
    }
    logger.debug("Computed filter options over %d events", len(events))
    return result


# ===== Grouping by response =====

def _group_key(value: Optional[ResponseValue]) -> str:
    return value.value if value is not None else "null"


def user_responses_map(
    events: Iterable[EventSnapshot],
    store: ResponseHistoryStore,
    user_id: Optional[str],
) -> dict[str, Optional[ResponseValue]]:
    """event id -> resolved response of ``user_id`` (None when unanswered)."""
    latest = store.latest_by_event(user_id) if user_id else {}
    return {e.id: (latest[e.id].final_response if e.id in latest else None) for e in events}


def group_events_by_response(
    events: Iterable[EventSnapshot],
    context: FilterContext,
) -> dict[str, list[EventSnapshot]]:
    """Events per raw resolved response of the context user."""
    groups: dict[str, list[EventSnapshot]] = {key: [] for key in GROUP_KEYS}
    for event in events:
        groups[_group_key(context.resolve(event))].append(event)
    return groups


def group_users_by_response(entries: Iterable[ResponseHistoryEntry]) -> dict[str, list[ResponseHistoryEntry]]:
    """Guest list of an event: each user's latest entry, grouped by its response."""
    groups: dict[str, list[ResponseHistoryEntry]] = {key: [] for key in GROUP_KEYS}
    for entry in entries:
        groups[_group_key(entry.final_response)].append(entry)
    return groups
