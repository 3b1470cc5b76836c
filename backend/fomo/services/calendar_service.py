"""Temporal classifier: buckets events into calendar periods.

Every instant is converted into the viewer's timezone before comparison.
Classification order (first match wins):

    past → today → tomorrow → thisWeekend → thisWeek → nextWeek
         → thisMonth → nextMonth → other

Weeks are ISO weeks (Monday start). Events classified ``other`` never show
up in the grouped calendar.
"""
import enum
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Iterable, Optional, Union

import pytz

from fomo.schemas.event import EventSnapshot

logger = logging.getLogger(__name__)


class PeriodKey(str, enum.Enum):
    past = "past"
    today = "today"
    tomorrow = "tomorrow"
    this_weekend = "thisWeekend"
    this_week = "thisWeek"
    next_week = "nextWeek"
    this_month = "thisMonth"
    next_month = "nextMonth"
    other = "other"


# Classification priority, which is also the calendar display order.
TIME_PERIODS: list[tuple[PeriodKey, str]] = [
    (PeriodKey.past, "Past"),
    (PeriodKey.today, "Today"),
    (PeriodKey.tomorrow, "Tomorrow"),
    (PeriodKey.this_weekend, "This weekend"),
    (PeriodKey.this_week, "This week"),
    (PeriodKey.next_week, "Next week"),
    (PeriodKey.this_month, "This month"),
    (PeriodKey.next_month, "Next month"),
]

PERIOD_LABELS = dict(TIME_PERIODS)
PERIOD_LABELS[PeriodKey.other] = "Other"
PERIOD_ORDER = {key: index for index, (key, _) in enumerate(TIME_PERIODS)}

_EPOCH = datetime(1970, 1, 1, tzinfo=pytz.utc)

TimezoneLike = Union[str, pytz.BaseTzInfo]


@dataclass
class CalendarPeriod:
    key: PeriodKey
    label: str
    start_date: Optional[datetime]
    end_date: Optional[datetime]  # exclusive
    events: list[EventSnapshot] = field(default_factory=list)


@dataclass
class CalendarGrouping:
    periods: list[CalendarPeriod]
    total_events: int


def get_timezone(tz: TimezoneLike) -> pytz.BaseTzInfo:
    """Resolve an IANA name; raises pytz.UnknownTimeZoneError for bad names."""
    return pytz.timezone(tz) if isinstance(tz, str) else tz


def to_local(instant: datetime, tz: TimezoneLike) -> datetime:
    """Convert to ``tz``; naive instants are taken as UTC."""
    if instant.tzinfo is None:
        instant = pytz.utc.localize(instant)
    return instant.astimezone(get_timezone(tz))


def _local_midnight(day: date, tz: pytz.BaseTzInfo) -> datetime:
    return tz.localize(datetime.combine(day, time.min))


def _month_start(day: date, months_ahead: int = 0) -> date:
    month_index = day.year * 12 + (day.month - 1) + months_ahead
    return date(month_index // 12, month_index % 12 + 1, 1)


def period_bounds(key: PeriodKey, now: datetime, tz: TimezoneLike) -> tuple[Optional[datetime], Optional[datetime]]:
    """``[start, end)`` of a period relative to ``now``, in local time."""
    zone = get_timezone(tz)
    local_now = to_local(now, zone)
    today = local_now.date()
    week_start = today - timedelta(days=today.weekday())

    if key == PeriodKey.past:
        return _EPOCH.astimezone(zone), local_now
    if key == PeriodKey.today:
        return _local_midnight(today, zone), _local_midnight(today + timedelta(days=1), zone)
    if key == PeriodKey.tomorrow:
        return _local_midnight(today + timedelta(days=1), zone), _local_midnight(today + timedelta(days=2), zone)
    if key == PeriodKey.this_weekend:
        return _local_midnight(week_start + timedelta(days=5), zone), _local_midnight(week_start + timedelta(days=7), zone)
    if key == PeriodKey.this_week:
        return _local_midnight(week_start, zone), _local_midnight(week_start + timedelta(days=7), zone)
    if key == PeriodKey.next_week:
        return _local_midnight(week_start + timedelta(days=7), zone), _local_midnight(week_start + timedelta(days=14), zone)
    if key == PeriodKey.this_month:
        return _local_midnight(_month_start(today), zone), _local_midnight(_month_start(today, 1), zone)
    if key == PeriodKey.next_month:
        return _local_midnight(_month_start(today, 1), zone), _local_midnight(_month_start(today, 2), zone)
    return None, None


def classify(event: EventSnapshot, now: datetime, tz: TimezoneLike) -> PeriodKey:
    """Assign ``event`` to exactly one calendar period."""
    if event.starts_at is None or event.ends_at is None:
        return PeriodKey.other

    zone = get_timezone(tz)
    local_now = to_local(now, zone)
    start = to_local(event.starts_at, zone)
    end = to_local(event.ends_at, zone)

    today = local_now.date()
    start_day = start.date()
    week_start = today - timedelta(days=today.weekday())
    next_week_start = week_start + timedelta(days=7)
    in_this_week = week_start <= start_day < next_week_start

    if end < local_now:
        return PeriodKey.past
    if start_day == today:
        return PeriodKey.today
    if start_day == today + timedelta(days=1):
        return PeriodKey.tomorrow
    if in_this_week and start_day.weekday() >= 5:
        return PeriodKey.this_weekend
    if in_this_week:
        return PeriodKey.this_week
    if next_week_start <= start_day < next_week_start + timedelta(days=7):
        return PeriodKey.next_week
    if (start_day.year, start_day.month) == (today.year, today.month):
        return PeriodKey.this_month
    following = _month_start(today, 1)
    if (start_day.year, start_day.month) == (following.year, following.month):
        return PeriodKey.next_month
    return PeriodKey.other


def get_period(event: EventSnapshot, now: datetime, tz: TimezoneLike) -> CalendarPeriod:
    """Classify and attach the period's label and interval (no events)."""
    key = classify(event, now, tz)
    if key == PeriodKey.other:
        start = to_local(event.starts_at, tz) if event.starts_at else None
        end = to_local(event.ends_at, tz) if event.ends_at else None
    else:
        start, end = period_bounds(key, now, tz)
    return CalendarPeriod(key=key, label=PERIOD_LABELS[key], start_date=start, end_date=end)


def group_by_periods(events: Iterable[EventSnapshot], now: datetime, tz: TimezoneLike) -> CalendarGrouping:
    """Group events per period; empty periods and ``other`` are left out."""
    events = list(events)
    buckets: dict[PeriodKey, list[EventSnapshot]] = {}
    for event in events:
        key = classify(event, now, tz)
        if key == PeriodKey.other:
            continue
        buckets.setdefault(key, []).append(event)

    periods = []
    for key in sorted(buckets, key=PERIOD_ORDER.__getitem__):
        start, end = period_bounds(key, now, tz)
        grouped = sorted(buckets[key], key=lambda e: e.starts_at)
        periods.append(CalendarPeriod(key=key, label=PERIOD_LABELS[key], start_date=start, end_date=end, events=grouped))

    logger.debug("Grouped %d events into %d periods", len(events), len(periods))
    return CalendarGrouping(periods=periods, total_events=len(events))
