"""Activity queries over the persisted event stream."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, date, datetime, time, timedelta
from typing import Optional

from catalog.errors import ProjectNotFound
from catalog.models import ActivityType
from catalog.services.activity import ActivityPoint, aggregate_activity, rollup_activity
from catalog.services.store import CatalogStore


@dataclass(slots=True)
class ActivitySummary:
    """Commit and deployment heatmaps for one project, or for the whole catalog."""

    commits: list[ActivityPoint] = field(default_factory=list)
    deployments: list[ActivityPoint] = field(default_factory=list)
    project_id: Optional[str] = None

    @property
    def total_commits(self) -> int:
        return sum(point.count for point in self.commits)

    @property
    def total_deployments(self) -> int:
        return sum(point.count for point in self.deployments)


def _window_start(days: int, today: date) -> datetime:
    return datetime.combine(today - timedelta(days=max(days, 1) - 1), time.min, tzinfo=UTC)


def project_activity(
    store: CatalogStore,
    project_id: str,
    *,
    days: int,
    today: Optional[date] = None,
) -> ActivitySummary:
    if store.get_by_id(project_id) is None:
        raise ProjectNotFound(project_id)
    today = today or datetime.now(UTC).date()
    events = store.list_events(project_id=project_id, since=_window_start(days, today))
    return ActivitySummary(
        project_id=project_id,
        commits=aggregate_activity(events, ActivityType.COMMIT.value, days, today),
        deployments=aggregate_activity(events, ActivityType.DEPLOYMENT.value, days, today),
    )


def global_activity(store: CatalogStore, *, days: int, today: Optional[date] = None) -> ActivitySummary:
    """Rollup across every project; each project contributes its own series."""
    today = today or datetime.now(UTC).date()
    events = store.list_events(since=_window_start(days, today))
    by_project: dict[str, list] = {}
    for event in events:
        by_project.setdefault(event.project_id, []).append(event)

    commit_series = [aggregate_activity(items, ActivityType.COMMIT.value, days, today) for items in by_project.values()]
    deployment_series = [
        aggregate_activity(items, ActivityType.DEPLOYMENT.value, days, today) for items in by_project.values()
    ]
    empty = aggregate_activity([], ActivityType.COMMIT.value, days, today)
    return ActivitySummary(
        commits=rollup_activity([empty, *commit_series], ActivityType.COMMIT.value),
        deployments=rollup_activity(
            [aggregate_activity([], ActivityType.DEPLOYMENT.value, days, today), *deployment_series],
            ActivityType.DEPLOYMENT.value,
        ),
    )
