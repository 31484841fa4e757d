"""Build activity events from source payloads and persist them by policy."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Any, Optional

from catalog.crawlers.contracts import CommitPayload, DeploymentPayload
from catalog.models import ActivityType
from catalog.services.activity import STATUS_FAILED, STATUS_NEUTRAL, STATUS_SUCCESS, as_utc
from catalog.services.store import ActivityEvent, CatalogStore

NATIVE_ID_LENGTH = 16

FAILED_DEPLOYMENT_STATES = frozenset({"ERROR", "CANCELED"})
SUCCESS_DEPLOYMENT_STATES = frozenset({"READY"})


class ReingestPolicy(str, Enum):
    """What to do when an event id already exists."""

    PRESERVE = "preserve"  # first write wins
    REFRESH = "refresh"  # latest observation wins

    @classmethod
    def parse(cls, value: str | "ReingestPolicy") -> "ReingestPolicy":
        try:
            return cls(str(getattr(value, "value", value)).strip().lower())
        except ValueError:
            raise ValueError(f"Unknown re-ingestion policy: {value!r}") from None


def make_event_id(project_id: str, event_type: str, native_id: str) -> str:
    event_type = str(getattr(event_type, "value", event_type))
    return f"{project_id}-{event_type}-{str(native_id)[:NATIVE_ID_LENGTH]}"


def deployment_status(state: Optional[str]) -> str:
    normalized = (state or "").upper()
    if normalized in FAILED_DEPLOYMENT_STATES:
        return STATUS_FAILED
    if normalized in SUCCESS_DEPLOYMENT_STATES:
        return STATUS_SUCCESS
    return STATUS_NEUTRAL


def is_failed_deployment(state: Optional[str]) -> bool:
    return deployment_status(state) == STATUS_FAILED


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Accept ISO-8601 strings (GitHub) and epoch milliseconds (Vercel)."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return as_utc(value)
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000, tz=UTC)
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return as_utc(datetime.fromisoformat(text))
    except ValueError:
        return None


def commit_event(project_id: str, payload: CommitPayload) -> Optional[ActivityEvent]:
    """Activity event for one GitHub commit payload, or None when unusable."""
    sha = payload.get("sha")
    commit = payload.get("commit") or {}
    author = commit.get("author") or {}
    committer = commit.get("committer") or {}
    timestamp = parse_timestamp(author.get("date") or committer.get("date"))
    if not sha or timestamp is None:
        return None

    message = str(commit.get("message") or "").strip()
    title = message.splitlines()[0] if message else "Commit"
    login = (payload.get("author") or {}).get("login")
    return ActivityEvent(
        id=make_event_id(project_id, ActivityType.COMMIT.value, sha),
        project_id=project_id,
        type=ActivityType.COMMIT.value,
        timestamp=timestamp,
        title=title,
        url=payload.get("html_url"),
        metadata={"sha": sha, "author": login or author.get("name")},
    )


def deployment_event(project_id: str, payload: DeploymentPayload) -> Optional[ActivityEvent]:
    """Activity event for one Vercel deployment payload, or None when unusable."""
    uid = payload.get("uid") or payload.get("id")
    timestamp = parse_timestamp(payload.get("createdAt") or payload.get("created"))
    if not uid or timestamp is None:
        return None

    state = payload.get("state") or payload.get("readyState")
    url = payload.get("url")
    if url and not str(url).startswith("http"):
        url = f"https://{url}"
    creator = payload.get("creator") or {}
    return ActivityEvent(
        id=make_event_id(project_id, ActivityType.DEPLOYMENT.value, uid),
        project_id=project_id,
        type=ActivityType.DEPLOYMENT.value,
        timestamp=timestamp,
        title=f"Deployment {state or 'UNKNOWN'}",
        url=url,
        metadata={
            "uid": uid,
            "state": state,
            "status": deployment_status(state),
            "author": creator.get("username"),
        },
    )


def record_event(store: CatalogStore, event: ActivityEvent, policy: ReingestPolicy) -> bool:
    """Persist ``event`` under ``policy``; True when a row was written."""
    if policy is ReingestPolicy.REFRESH:
        return store.upsert_event(event)
    return store.append_event_if_absent(event)
