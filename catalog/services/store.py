"""Catalog persistence boundary.

``CatalogStore`` is what the pipeline talks to; ``SQLAlchemyCatalogStore``
implements it with one short-lived session per call and dialect-native
``INSERT ... ON CONFLICT`` statements so that lookup-then-write on an
identity key is a single atomic statement.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
import logging
from typing import Any, Callable, Iterable, Mapping, Optional, Protocol

from sqlalchemy import or_, select, update
from sqlalchemy.orm import Session

from catalog.models import ActivityItem, Project, TechStackSnapshot
from catalog.models.project import new_id
from catalog.services.classifier import ClassificationSnapshot

logger = logging.getLogger(__name__)

# Columns a sync is allowed to write. User-owned columns are absent on purpose.
SYNC_FIELDS = frozenset(
    {
        "name",
        "status",
        "repo_slug",
        "vercel_project",
        "vercel_url",
        "html_url",
        "description",
        "description_generated",
        "category",
        "language",
        "package_manager",
        "last_commit_at",
        "last_deployment_at",
    }
)


@dataclass(slots=True)
class ActivityEvent:
    """Activity event ready for persistence."""

    id: str
    project_id: str
    type: str
    timestamp: datetime
    title: str
    url: Optional[str] = None
    metadata: dict[str, Any] = field(default_factory=dict)


class CatalogStore(Protocol):
    """Keyed store with upsert-by-unique-key semantics."""

    def get(self, identity_key: str) -> Project | None: ...

    def get_by_id(self, project_id: str) -> Project | None: ...

    def find_candidates(self, *, name: str | None, repo_slug: str | None) -> list[Project]: ...

    def upsert(
        self,
        identity_key: str,
        fields: Mapping[str, Any],
        *,
        provenance: str,
        origin: str | None = None,
        insert_fields: Mapping[str, Any] | None = None,
    ) -> Project: ...

    def upsert_record(
        self,
        identity_key: str,
        fields: Mapping[str, Any],
        *,
        provenance: str,
        origin: str | None = None,
        insert_fields: Mapping[str, Any] | None = None,
    ) -> tuple[Project, bool]: ...


    def replace_snapshot(self, project_id: str, snapshot: ClassificationSnapshot) -> None: ...

    def get_snapshot(self, project_id: str) -> TechStackSnapshot | None: ...

    def append_event_if_absent(self, event: ActivityEvent) -> bool: ...

    def upsert_event(self, event: ActivityEvent) -> bool: ...

    def list_projects(self) -> list[Project]: ...

    def list_events(
        self,
        *,
        project_id: str | None = None,
        event_type: str | None = None,
        since: datetime | None = None,
    ) -> list[ActivityItem]: ...

    def update_project(self, project_id: str, fields: Mapping[str, Any]) -> Project | None: ...

    def mark_redundant(self, project_ids: Iterable[str]) -> int: ...


def _sync_values(fields: Mapping[str, Any]) -> dict[str, Any]:
    unknown = set(fields) - SYNC_FIELDS
    if unknown:
        logger.debug("Dropping non-sync fields from upsert: %s", sorted(unknown))
    return {key: value for key, value in fields.items() if key in SYNC_FIELDS}


def _dialect_insert(session: Session):
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        raise NotImplementedError(f"Upsert not supported for dialect {dialect!r}")
    return insert


class SQLAlchemyCatalogStore:
    """SQLAlchemy-backed catalog store."""

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    def _run(self, work: Callable[[Session], Any]) -> Any:
        db = self._session_factory()
        try:
            result = work(db)
            db.commit()
            return result
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def get(self, identity_key: str) -> Project | None:
        return self._run(lambda db: db.execute(select(Project).where(Project.path == identity_key)).scalar_one_or_none())

    def get_by_id(self, project_id: str) -> Project | None:
        return self._run(lambda db: db.get(Project, project_id))

    def find_candidates(self, *, name: str | None, repo_slug: str | None) -> list[Project]:
        clauses = []
        if repo_slug:
            clauses.append(Project.repo_slug == repo_slug)
        if name:
            clauses.append(Project.name == name)
        if not clauses:
            return []
        query = select(Project).where(or_(*clauses)).order_by(Project.updated_at.desc())
        return self._run(lambda db: list(db.execute(query).scalars().all()))

    def upsert(
        self,
        identity_key: str,
        fields: Mapping[str, Any],
        *,
        provenance: str,
        origin: str | None = None,
        insert_fields: Mapping[str, Any] | None = None,
    ) -> Project:
        project, _ = self.upsert_record(
            identity_key, fields, provenance=provenance, origin=origin, insert_fields=insert_fields
        )
        return project

    def upsert_record(
        self,
        identity_key: str,
        fields: Mapping[str, Any],
        *,
        provenance: str,
        origin: str | None = None,
        insert_fields: Mapping[str, Any] | None = None,
    ) -> tuple[Project, bool]:
        """
        Insert or update the record keyed by ``identity_key``.

        ``fields`` are written either way; ``insert_fields``, ``provenance``
        and ``origin`` only when the row is created. Returns the stored row
        and whether this statement inserted it.
        """
        values = _sync_values(fields)
        initial = {**values, **_sync_values(insert_fields or {})}
        row_id = new_id()
        now = datetime.now(UTC)

        def _work(db: Session) -> tuple[Project, bool]:
            insert = _dialect_insert(db)
            statement = insert(Project.__table__).values(
                id=row_id,
                path=identity_key,
                name=initial.get("name") or identity_key,
                source=provenance,
                origin=origin,
                created_at=now,
                updated_at=now,
                **{key: value for key, value in initial.items() if key != "name"},
            )
            statement = statement.on_conflict_do_update(
                index_elements=[Project.__table__.c.path],
                set_={**values, "updated_at": now},
            )
            db.execute(statement)
            project = db.execute(select(Project).where(Project.path == identity_key)).scalar_one()
            # A conflicting row keeps its own id, so only a fresh insert carries ours.
            return project, project.id == row_id

        return self._run(_work)

    def replace_snapshot(self, project_id: str, snapshot: ClassificationSnapshot) -> None:
        values = {
            "primary_framework": snapshot.primary_framework,
            "backend_framework": snapshot.backend_framework,
            "primary_db": snapshot.primary_db,
            "primary_auth": snapshot.primary_auth,
            "tags": list(snapshot.tags),
            "last_scanned_at": snapshot.last_scanned_at,
        }

        def _work(db: Session) -> None:
            insert = _dialect_insert(db)
            statement = insert(TechStackSnapshot.__table__).values(id=new_id(), project_id=project_id, **values)
            statement = statement.on_conflict_do_update(
                index_elements=[TechStackSnapshot.__table__.c.project_id],
                set_=values,
            )
            db.execute(statement)

        self._run(_work)

    def get_snapshot(self, project_id: str) -> TechStackSnapshot | None:
        query = select(TechStackSnapshot).where(TechStackSnapshot.project_id == project_id)
        return self._run(lambda db: db.execute(query).scalar_one_or_none())

    def _write_event(self, event: ActivityEvent, *, refresh: bool) -> bool:
        row = {
            "id": event.id,
            "project_id": event.project_id,
            "type": event.type,
            "timestamp": event.timestamp,
            "title": event.title,
            "url": event.url,
            "metadata": dict(event.metadata),
        }

        def _work(db: Session) -> bool:
            insert = _dialect_insert(db)
            statement = insert(ActivityItem.__table__).values(**row)
            if refresh:
                statement = statement.on_conflict_do_update(
                    index_elements=[ActivityItem.__table__.c.id],
                    set_={key: value for key, value in row.items() if key not in ("id", "project_id")},
                )
            else:
                statement = statement.on_conflict_do_nothing(index_elements=[ActivityItem.__table__.c.id])
            result = db.execute(statement)
            return bool(result.rowcount)

        return self._run(_work)

    def append_event_if_absent(self, event: ActivityEvent) -> bool:
        """Insert ``event`` unless its id exists; returns True when a row was written."""
        return self._write_event(event, refresh=False)

    def upsert_event(self, event: ActivityEvent) -> bool:
        """Insert ``event`` or overwrite the stored copy with the latest values."""
        return self._write_event(event, refresh=True)

    def list_projects(self) -> list[Project]:
        return self._run(lambda db: list(db.execute(select(Project).order_by(Project.name)).scalars().all()))

    def list_events(
        self,
        *,
        project_id: str | None = None,
        event_type: str | None = None,
        since: datetime | None = None,
    ) -> list[ActivityItem]:
        query = select(ActivityItem)
        if project_id is not None:
            query = query.where(ActivityItem.project_id == project_id)
        if event_type is not None:
            query = query.where(ActivityItem.type == event_type)
        if since is not None:
            query = query.where(ActivityItem.timestamp >= since)
        query = query.order_by(ActivityItem.timestamp)
        return self._run(lambda db: list(db.execute(query).scalars().all()))

    def update_project(self, project_id: str, fields: Mapping[str, Any]) -> Project | None:
        """Direct column update by id, used for user-owned settings."""

        def _work(db: Session) -> Project | None:
            result = db.execute(
                update(Project)
                .where(Project.id == project_id)
                .values(**dict(fields), updated_at=datetime.now(UTC))
                .execution_options(synchronize_session=False)
            )
            if not result.rowcount:
                return None
            return db.get(Project, project_id, populate_existing=True)

        return self._run(_work)

    def mark_redundant(self, project_ids: Iterable[str]) -> int:
        ids = list(project_ids)
        if not ids:
            return 0

        def _work(db: Session) -> int:
            result = db.execute(
                update(Project)
                .where(Project.id.in_(ids))
                .values(status="redundant", updated_at=datetime.now(UTC))
                .execution_options(synchronize_session=False)
            )
            return int(result.rowcount or 0)

        return self._run(_work)
