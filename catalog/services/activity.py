"""Activity aggregation: fixed-window daily heatmap series.

Pure functions over persisted activity events. Days are UTC calendar days,
the window always has exactly ``days`` buckets ending today, oldest first.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta
from typing import Iterable, Optional, Protocol, Sequence

from catalog.models import ActivityType

STATUS_SUCCESS = "success"
STATUS_FAILED = "failed"
STATUS_NEUTRAL = "neutral"

# (minimum count, level) pairs, highest first.
COMMIT_LEVELS: tuple[tuple[int, int], ...] = ((7, 4), (4, 3), (2, 2), (1, 1))
DEPLOYMENT_LEVELS: tuple[tuple[int, int], ...] = ((5, 4), (3, 3), (2, 2), (1, 1))

LEVEL_TABLES = {
    ActivityType.COMMIT.value: COMMIT_LEVELS,
    ActivityType.DEPLOYMENT.value: DEPLOYMENT_LEVELS,
}


class EventLike(Protocol):
    type: str
    timestamp: datetime
    event_metadata: Optional[dict]


@dataclass(frozen=True, slots=True)
class ActivityPoint:
    date: date
    count: int
    level: int
    status: Optional[str] = None


def as_utc(value: datetime) -> datetime:
    """Treat naive timestamps as UTC (SQLite drops tzinfo on the way back)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def activity_level(count: int, event_type: str) -> int:
    """Map a daily count onto the 0-4 intensity scale for ``event_type``."""
    try:
        table = LEVEL_TABLES[str(event_type)]
    except KeyError:
        raise ValueError(f"Unknown activity type: {event_type!r}") from None
    for minimum, level in table:
        if count >= minimum:
            return level
    return 0


def _event_status(event: EventLike) -> Optional[str]:
    metadata = getattr(event, "event_metadata", None) or {}
    return metadata.get("status")


def _deployment_status(count: int, failed: bool) -> str:
    if failed:
        return STATUS_FAILED
    return STATUS_SUCCESS if count > 0 else STATUS_NEUTRAL


def aggregate_activity(
    events: Iterable[EventLike],
    event_type: str,
    days: int,
    today: Optional[date] = None,
) -> list[ActivityPoint]:
    if days <= 0:
        return []
    event_type = str(getattr(event_type, "value", event_type))
    today = today or datetime.now(UTC).date()
    start = today - timedelta(days=days - 1)

    counts: dict[date, int] = {}
    failed_days: set[date] = set()
    for event in events:
        if event.type != event_type:
            continue
        day = as_utc(event.timestamp).date()
        if day < start or day > today:
            continue
        counts[day] = counts.get(day, 0) + 1
        if _event_status(event) == STATUS_FAILED:
            failed_days.add(day)

    is_deployment = event_type == ActivityType.DEPLOYMENT.value
    series = []
    for offset in range(days):
        day = start + timedelta(days=offset)
        count = counts.get(day, 0)
        status = _deployment_status(count, day in failed_days) if is_deployment else None
        series.append(ActivityPoint(date=day, count=count, level=activity_level(count, event_type), status=status))
    return series


def rollup_activity(series_list: Sequence[Sequence[ActivityPoint]], event_type: str) -> list[ActivityPoint]:
    """Sum several per-project series into one global series."""
    event_type = str(getattr(event_type, "value", event_type))
    counts: dict[date, int] = {}
    failed_days: set[date] = set()
    for series in series_list:
        for point in series:
            counts[point.date] = counts.get(point.date, 0) + point.count
            if point.status == STATUS_FAILED:
                failed_days.add(point.date)

    is_deployment = event_type == ActivityType.DEPLOYMENT.value
    return [
        ActivityPoint(
            date=day,
            count=counts[day],
            level=activity_level(counts[day], event_type),
            status=_deployment_status(counts[day], day in failed_days) if is_deployment else None,
        )
        for day in sorted(counts)
    ]
