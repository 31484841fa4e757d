"""Identity resolution and merge policy for incoming project records."""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import Any, Iterable, Optional

from catalog.crawlers.base import sanitize_log_extra
from catalog.errors import IdentityConflict
from catalog.models import Project, ProjectStatus, Provenance
from catalog.services.store import CatalogStore

logger = logging.getLogger(__name__)

MATCH_IDENTITY_KEY = "identity_key"
MATCH_REPO_SLUG = "repo_slug"
MATCH_NAME = "name"
MATCH_NEW = "new"


@dataclass(slots=True)
class IncomingProject:
    """A project as one source sees it.

    ``fields`` holds only the columns this source knows about; everything
    else on an existing record is left alone. ``insert_fields`` seed a new
    record and are ignored when the project already exists. ``origin`` names
    the sync that sees the record and is stored only on insert.
    """

    provenance: str
    name: str
    identity_key: Optional[str] = None
    repo_slug: Optional[str] = None
    host: str = "github"
    origin: Optional[str] = None
    fields: dict[str, Any] = field(default_factory=dict)
    insert_fields: dict[str, Any] = field(default_factory=dict)
    generated_description: Optional[str] = None


@dataclass(slots=True)
class MergeOutcome:
    project: Project
    created: bool
    matched_by: str


def hosted_identity_key(*, host: str, repo_slug: Optional[str], name: str, fallback_host: str = "vercel") -> str:
    """Stable key for a project known only to a hosting platform.

    Host + slug is preferred so two platforms describing the same repository
    converge on one key; the name form is a last resort.
    """
    if repo_slug:
        return f"{host}:{repo_slug}"
    return f"{fallback_host}:{name}"


class IdentityResolver:
    """Maps incoming records onto catalog entries and writes them."""

    def __init__(self, store: CatalogStore) -> None:
        self._store = store

    def resolve(self, incoming: IncomingProject) -> tuple[str, Optional[Project], str]:
        """Return ``(identity_key, existing_record_or_None, matched_by)``."""
        if incoming.identity_key:
            existing = self._store.get(incoming.identity_key)
            return incoming.identity_key, existing, MATCH_IDENTITY_KEY if existing else MATCH_NEW

        key = hosted_identity_key(host=incoming.host, repo_slug=incoming.repo_slug, name=incoming.name)
        existing = self._store.get(key)
        if existing is not None:
            return key, existing, MATCH_IDENTITY_KEY

        candidates = self._store.find_candidates(name=incoming.name, repo_slug=incoming.repo_slug)
        slug_matches = [item for item in candidates if incoming.repo_slug and item.repo_slug == incoming.repo_slug]
        # A name match that points at a different repository is another project.
        name_matches = [
            item
            for item in candidates
            if item.name == incoming.name
            and not (incoming.repo_slug and item.repo_slug and item.repo_slug != incoming.repo_slug)
        ]
        pool, matched_by = (slug_matches, MATCH_REPO_SLUG) if slug_matches else (name_matches, MATCH_NAME)
        if not pool:
            return key, None, MATCH_NEW

        chosen = pool[0]
        if len(pool) > 1:
            conflict = IdentityConflict(incoming.name, [item.path for item in pool])
            logger.warning(
                "Ambiguous secondary identity match, using most recently updated candidate",
                extra=sanitize_log_extra(
                    incoming=key,
                    matched_by=matched_by,
                    candidates=conflict.candidates,
                    chosen=chosen.path,
                ),
            )
        logger.info(
            "Merging hosted record into existing project by secondary identity",
            extra=sanitize_log_extra(incoming=key, matched_by=matched_by, project=chosen.path),
        )
        return chosen.path, chosen, matched_by

    def merge(self, incoming: IncomingProject) -> MergeOutcome:
        key, existing, matched_by = self.resolve(incoming)
        fields = self._merge_fields(incoming, existing)
        project, created = self._store.upsert_record(
            key,
            fields,
            provenance=incoming.provenance,
            origin=incoming.origin,
            insert_fields=incoming.insert_fields,
        )
        return MergeOutcome(project=project, created=created, matched_by=matched_by)

    @staticmethod
    def _merge_fields(incoming: IncomingProject, existing: Optional[Project]) -> dict[str, Any]:
        """Last-writer-wins over known fields, with the description exception.

        A human description from the source always wins. Without one, an
        existing human description is kept; otherwise the synthesized text is
        written and flagged as generated.
        """
        fields = dict(incoming.fields)
        description = fields.pop("description", None)
        if isinstance(description, str) and description.strip():
            fields["description"] = description.strip()
            fields["description_generated"] = False
            return fields

        has_human_description = (
            existing is not None and bool(existing.description) and not existing.description_generated
        )
        if not has_human_description and incoming.generated_description:
            fields["description"] = incoming.generated_description
            fields["description_generated"] = True
        return fields

    def mark_missing(self, seen_keys: Iterable[str], *, host: str = "github") -> int:
        """Flip hosted records no longer listed by ``host`` to redundant.

        Only records that ``host``'s own sync inserted are considered; a
        record another platform created under the same key prefix was never
        part of this listing.
        """
        seen = set(seen_keys)
        prefix = f"{host}:"
        missing = [
            project
            for project in self._store.list_projects()
            if project.source == Provenance.HOSTED.value
            and project.origin == host
            and project.path.startswith(prefix)
            and project.path not in seen
            and project.status != ProjectStatus.REDUNDANT.value
        ]
        if not missing:
            return 0
        logger.info(
            "Marking hosted projects missing from source as redundant",
            extra=sanitize_log_extra(host=host, projects=[project.path for project in missing]),
        )
        return self._store.mark_redundant(project.id for project in missing)
