"""Catalog orchestrator with concurrency-bounded, failure-isolated syncs."""

from __future__ import annotations

import asyncio
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime, timedelta
import logging
from typing import Any, Awaitable, Callable, Optional, Sequence, TypeVar

from catalog.config.settings import Settings, settings as default_settings
from catalog.crawlers.base import sanitize_for_log, sanitize_log_extra
from catalog.crawlers.github import GitHubSource
from catalog.crawlers.scanner import DetectedProject, scan_projects
from catalog.crawlers.vercel import VercelSource
from catalog.errors import ConfigurationMissing, ManifestUnreadable, SourceUnavailable
from catalog.models import Project, ProjectStatus, Provenance
from catalog.services.activity import as_utc
from catalog.services.classifier import ClassificationSnapshot, Manifest, classify_manifest
from catalog.services.events import (
    ReingestPolicy,
    commit_event,
    deployment_event,
    parse_timestamp,
    record_event,
)
from catalog.services.resolver import IdentityResolver, IncomingProject, hosted_identity_key
from catalog.services.store import CatalogStore
from catalog.services.synthesizer import categorize_snapshot, synthesize_description

logger = logging.getLogger(__name__)

T = TypeVar("T")

SOURCE_SCANNER = "scanner"
SOURCE_GITHUB = "github"
SOURCE_VERCEL = "vercel"
SOURCE_ACTIVITY = "activity"

ALL_SOURCES = (SOURCE_SCANNER, SOURCE_GITHUB, SOURCE_VERCEL, SOURCE_ACTIVITY)

# Vercel framework slugs mapped onto classifier labels.
VERCEL_FRAMEWORKS = {
    "nextjs": "Next.js",
    "nuxtjs": "Nuxt",
    "remix": "Remix",
    "sveltekit": "SvelteKit",
    "sveltekit-1": "SvelteKit",
    "astro": "Astro",
    "vite": "Vite",
    "vue": "Vue",
    "svelte": "Svelte",
    "angular": "Angular",
    "create-react-app": "React",
    "solidstart": "Solid",
    "hono": "Hono",
    "express": "Express",
}

# Worker result: True when a record was inserted, False when updated, None when untouched.
BatchWorker = Callable[[T], Awaitable[Optional[bool]]]


@dataclass(slots=True)
class ProjectFailure:
    identity: str
    message: str


@dataclass(slots=True)
class SyncSummary:
    """Outcome of one sync pass over one source."""

    source: str
    total: int = 0
    inserted: int = 0
    updated: int = 0
    failed: int = 0
    events: int = 0
    redundant: int = 0
    skipped: bool = False
    reason: Optional[str] = None
    error: Optional[str] = None
    failures: list[ProjectFailure] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.error is None

    @classmethod
    def skipped_for(cls, source: str, reason: str) -> "SyncSummary":
        return cls(source=source, skipped=True, reason=reason)

    def merge(self, other: "SyncSummary") -> None:
        self.total += other.total
        self.inserted += other.inserted
        self.updated += other.updated
        self.failed += other.failed
        self.failures.extend(other.failures)

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["success"] = self.success
        return payload


class CatalogSyncOrchestrator:
    """Coordinates scanner, GitHub, Vercel and activity passes over one store."""

    def __init__(
        self,
        *,
        store: CatalogStore,
        github_factory: Callable[[], Any] | None = None,
        vercel_factory: Callable[[], Any] | None = None,
        config: Settings | None = None,
        resolver: IdentityResolver | None = None,
    ) -> None:
        self._config = config or default_settings
        self._store = store
        self._resolver = resolver or IdentityResolver(store)
        self._github_factory = github_factory or (lambda: GitHubSource.from_settings(self._config))
        self._vercel_factory = vercel_factory or (lambda: VercelSource.from_settings(self._config))
        self._max_concurrency = max(int(self._config.MAX_CONCURRENT_REQUESTS), 1)
        self._project_timeout = float(self._config.PROJECT_TIMEOUT_SECONDS)

    async def run_batch(
        self,
        items: Sequence[T],
        worker: BatchWorker,
        *,
        label: str,
        identify: Callable[[T], str] = str,
    ) -> SyncSummary:
        """Run ``worker`` over ``items`` in chunks of at most the concurrency limit.

        Each chunk completes before the next starts. A failing or timed-out
        item is counted and reported; it never aborts the batch.
        """
        summary = SyncSummary(source=label, total=len(items))
        for start in range(0, len(items), self._max_concurrency):
            chunk = items[start : start + self._max_concurrency]
            results = await asyncio.gather(*(self._run_one(item, worker, label, identify) for item in chunk))
            for identity, created, error in results:
                if error is not None:
                    summary.failed += 1
                    summary.failures.append(ProjectFailure(identity=identity, message=error))
                elif created is True:
                    summary.inserted += 1
                elif created is False:
                    summary.updated += 1
        return summary

    async def _run_one(
        self,
        item: T,
        worker: BatchWorker,
        label: str,
        identify: Callable[[T], str],
    ) -> tuple[str, Optional[bool], Optional[str]]:
        identity = sanitize_for_log(identify(item))
        try:
            created = await asyncio.wait_for(worker(item), timeout=self._project_timeout)
            return identity, created, None
        except asyncio.TimeoutError:
            error = f"timed out after {self._project_timeout:g}s"
        except Exception as exc:
            error = sanitize_for_log(str(exc) or type(exc).__name__, key="error")
        logger.warning(
            "Sync failed for project",
            extra=sanitize_log_extra(source=label, project=identity, error=error),
        )
        return identity, None, error

    def _open_source(self, factory: Callable[[], Any], source: str) -> Any:
        try:
            return factory()
        except ConfigurationMissing as exc:
            logger.info(
                "Source not configured, skipping",
                extra=sanitize_log_extra(source=source, setting=exc.setting),
            )
            return None

    def _persist(self, incoming: IncomingProject, snapshot: Optional[ClassificationSnapshot]) -> bool:
        outcome = self._resolver.merge(incoming)
        if snapshot is not None:
            self._store.replace_snapshot(outcome.project.id, snapshot)
        return outcome.created

    # Scanner

    async def ingest_scanned_projects(
        self,
        *,
        root: Optional[str] = None,
        projects: Optional[Sequence[DetectedProject]] = None,
    ) -> SyncSummary:
        if projects is None:
            if not root:
                return SyncSummary.skipped_for(SOURCE_SCANNER, "No scan root given")
            projects = await asyncio.to_thread(scan_projects, root, override_file=self._config.MANIFEST_OVERRIDE_FILE)

        async def _ingest(detected: DetectedProject) -> bool:
            return self._ingest_detected(detected)

        summary = await self.run_batch(list(projects), _ingest, label=SOURCE_SCANNER, identify=lambda item: item.path)
        self._log_summary(summary)
        return summary

    def _ingest_detected(self, detected: DetectedProject) -> bool:
        snapshot = classify_manifest(detected.manifest)
        category = categorize_snapshot(snapshot, detected.language)
        fields: dict[str, Any] = {
            "name": detected.name,
            "description": detected.description,
            "category": category.value,
            "language": detected.language,
            "package_manager": detected.package_manager,
        }
        if detected.repo_slug:
            fields["repo_slug"] = detected.repo_slug
        if detected.vercel_project:
            fields["vercel_project"] = detected.vercel_project
        incoming = IncomingProject(
            provenance=Provenance.SCANNER.value,
            name=detected.name,
            identity_key=detected.path,
            origin=SOURCE_SCANNER,
            repo_slug=detected.repo_slug,
            fields=fields,
            generated_description=synthesize_description(detected.name, snapshot, detected.language),
        )
        return self._persist(incoming, snapshot)

    # GitHub

    async def run_github_sync(self, *, max_pages: Optional[int] = None) -> SyncSummary:
        client = self._open_source(self._github_factory, SOURCE_GITHUB)
        if client is None:
            return SyncSummary.skipped_for(SOURCE_GITHUB, "GITHUB_TOKEN not configured")

        async with client:
            try:
                repositories = await client.list_repositories(max_pages=max_pages)
            except SourceUnavailable as exc:
                return self._listing_failed(SOURCE_GITHUB, exc)

            async def _sync(repo: dict[str, Any]) -> bool:
                return await self._sync_repository(client, repo)

            summary = await self.run_batch(
                repositories,
                _sync,
                label=SOURCE_GITHUB,
                identify=lambda repo: str(repo.get("full_name") or repo.get("name")),
            )

        # Only a full listing proves that a repository is gone.
        if max_pages is None:
            seen = {
                hosted_identity_key(host=SOURCE_GITHUB, repo_slug=repo.get("full_name"), name=str(repo.get("name")))
                for repo in repositories
            }
            summary.redundant = self._resolver.mark_missing(seen, host=SOURCE_GITHUB)
        self._log_summary(summary)
        return summary

    async def _sync_repository(self, client: Any, repo: dict[str, Any]) -> bool:
        slug = str(repo.get("full_name") or "")
        name = str(repo.get("name") or slug.rpartition("/")[2])
        if not slug:
            raise ValueError("Repository payload without full_name")

        manifest = await self._fetch_remote_manifest(client, slug)
        snapshot = classify_manifest(manifest)
        language = repo.get("language")
        category = categorize_snapshot(snapshot, language)
        fields = {
            "name": name,
            "repo_slug": slug,
            "html_url": repo.get("html_url"),
            "description": repo.get("description"),
            "language": language,
            "category": category.value,
            "status": ProjectStatus.REDUNDANT.value if repo.get("archived") else ProjectStatus.ACTIVE.value,
            "last_commit_at": parse_timestamp(repo.get("pushed_at")),
        }
        incoming = IncomingProject(
            provenance=Provenance.HOSTED.value,
            name=name,
            repo_slug=slug,
            host=SOURCE_GITHUB,
            origin=SOURCE_GITHUB,
            fields=fields,
            generated_description=synthesize_description(name, snapshot, language),
        )
        return self._persist(incoming, snapshot)

    async def _fetch_remote_manifest(self, client: Any, slug: str) -> Optional[Manifest]:
        try:
            package = await client.fetch_manifest(slug)
        except ManifestUnreadable as exc:
            logger.warning(
                "Remote manifest unreadable, using empty classification",
                extra=sanitize_log_extra(repo=slug, reason=exc.reason),
            )
            return None
        if package is None:
            return None
        root_entries = await client.list_root_entries(slug)
        return Manifest.from_package_json(package, marker_files=root_entries)

    # Vercel

    async def run_vercel_sync(self, *, max_pages: Optional[int] = None) -> SyncSummary:
        client = self._open_source(self._vercel_factory, SOURCE_VERCEL)
        if client is None:
            return SyncSummary.skipped_for(SOURCE_VERCEL, "VERCEL_TOKEN not configured")

        async with client:
            try:
                vercel_projects = await client.list_projects(max_pages=max_pages)
            except SourceUnavailable as exc:
                return self._listing_failed(SOURCE_VERCEL, exc)

        policy = ReingestPolicy.parse(self._config.DEPLOYMENT_REINGEST_POLICY)
        summary = SyncSummary(source=SOURCE_VERCEL)

        async def _sync(payload: dict[str, Any]) -> bool:
            created, written = self._sync_vercel_project(payload, policy)
            summary.events += written
            return created

        summary.merge(
            await self.run_batch(
                vercel_projects,
                _sync,
                label=SOURCE_VERCEL,
                identify=lambda payload: str(payload.get("name") or payload.get("id")),
            )
        )
        self._log_summary(summary)
        return summary

    def _sync_vercel_project(self, payload: dict[str, Any], policy: ReingestPolicy) -> tuple[bool, int]:
        name = str(payload.get("name") or "")
        if not name:
            raise ValueError("Vercel project payload without name")

        link = payload.get("link") or {}
        host = str(link.get("type") or SOURCE_GITHUB)
        owner = link.get("org") or link.get("repoOwner")
        repo_name = link.get("repo")
        repo_slug = f"{owner}/{repo_name}" if owner and repo_name else (repo_name or None)

        deployments = list(payload.get("latestDeployments") or [])
        latest = deployments[0] if deployments else {}
        fields: dict[str, Any] = {
            "vercel_project": payload.get("id"),
            "vercel_url": f"https://{latest['url']}" if latest.get("url") else None,
            "last_deployment_at": parse_timestamp(latest.get("createdAt") or latest.get("created")),
        }
        if repo_slug:
            fields["repo_slug"] = repo_slug

        # Name and a framework-only description seed placeholders; an existing
        # record keeps what the scanner or GitHub derived from the full manifest.
        framework = VERCEL_FRAMEWORKS.get(str(payload.get("framework") or "").lower())
        incoming = IncomingProject(
            provenance=Provenance.HOSTED.value,
            name=name,
            repo_slug=repo_slug,
            host=host,
            origin=SOURCE_VERCEL,
            fields=fields,
            insert_fields={
                "name": name,
                "description": synthesize_description(name, ClassificationSnapshot(primary_framework=framework)),
                "description_generated": True,
            },
        )
        outcome = self._resolver.merge(incoming)

        written = 0
        for deployment in deployments:
            event = deployment_event(outcome.project.id, deployment)
            if event is not None and record_event(self._store, event, policy):
                written += 1
        return outcome.created, written

    # Activity

    async def refresh_activity(self, *, project_ids: Optional[Sequence[str]] = None) -> SyncSummary:
        """Pull recent commits and deployments for every linked project."""
        projects = [
            project
            for project in self._store.list_projects()
            if (project.repo_slug or project.vercel_project) and (not project_ids or project.id in project_ids)
        ]
        if not projects:
            return SyncSummary.skipped_for(SOURCE_ACTIVITY, "No linked projects found")

        github = self._open_source(self._github_factory, SOURCE_GITHUB)
        vercel = self._open_source(self._vercel_factory, SOURCE_VERCEL)
        if github is None and vercel is None:
            return SyncSummary.skipped_for(SOURCE_ACTIVITY, "No activity source configured")

        since = datetime.now(UTC) - timedelta(days=self._config.ACTIVITY_WINDOW_DAYS)
        commit_policy = ReingestPolicy.parse(self._config.COMMIT_REINGEST_POLICY)
        deployment_policy = ReingestPolicy.parse(self._config.DEPLOYMENT_REINGEST_POLICY)
        summary = SyncSummary(source=SOURCE_ACTIVITY)

        async def _refresh(project: Project) -> Optional[bool]:
            fields: dict[str, Any] = {}
            written = 0
            if github is not None and project.repo_slug:
                commits = await github.list_commits(project.repo_slug, since=since)
                events = [event for event in (commit_event(project.id, item) for item in commits) if event]
                written += sum(1 for event in events if record_event(self._store, event, commit_policy))
                latest = self._latest(events, project.last_commit_at)
                if latest is not None:
                    fields["last_commit_at"] = latest
            if vercel is not None and project.vercel_project:
                deployments = await vercel.list_deployments(project.vercel_project, since=since)
                events = [event for event in (deployment_event(project.id, item) for item in deployments) if event]
                written += sum(1 for event in events if record_event(self._store, event, deployment_policy))
                latest = self._latest(events, project.last_deployment_at)
                if latest is not None:
                    fields["last_deployment_at"] = latest

            summary.events += written
            if fields:
                self._store.update_project(project.id, fields)
            return False if fields or written else None

        try:
            summary.merge(
                await self.run_batch(projects, _refresh, label=SOURCE_ACTIVITY, identify=lambda project: project.path)
            )
        finally:
            for client in (github, vercel):
                if client is not None:
                    await client.aclose()
        self._log_summary(summary)
        return summary

    @staticmethod
    def _latest(events: Sequence[Any], current: Optional[datetime]) -> Optional[datetime]:
        """Newest event timestamp when it is newer than ``current``."""
        if not events:
            return None
        newest = max(event.timestamp for event in events)
        if current is not None and as_utc(current) >= newest:
            return None
        return newest

    # Full run

    async def run_full_sync(
        self,
        *,
        sources: Sequence[str] | None = None,
        scan_root: Optional[str] = None,
    ) -> dict[str, Any]:
        selected = tuple(sources or ALL_SOURCES)
        run_stats: dict[str, Any] = {
            "started_at": datetime.now(UTC).isoformat(),
            "sources_requested": list(selected),
            "sources": {},
            "errors": [],
        }
        logger.info("Catalog sync started", extra=sanitize_log_extra(sources=list(selected)))

        for source in selected:
            runner = self._resolve_source_runner(source, scan_root)
            if runner is None:
                run_stats["sources"][source] = SyncSummary(source=source, error=f"Unknown source: {source}").to_dict()
                run_stats["errors"].append(f"{source}: unknown source")
                logger.warning("Catalog sync received unknown source", extra=sanitize_log_extra(source=source))
                continue

            try:
                summary = await runner()
            except Exception as exc:
                error = sanitize_for_log(str(exc), key="error")
                logger.exception("Catalog source raised exception", extra=sanitize_log_extra(source=source, error=error))
                summary = SyncSummary(source=source, error=error)
            if summary.error:
                run_stats["errors"].append(f"{source}: {summary.error}")
            run_stats["sources"][source] = summary.to_dict()

        run_stats["completed_at"] = datetime.now(UTC).isoformat()
        run_stats["success"] = not run_stats["errors"]
        logger.info(
            "Catalog sync completed",
            extra=sanitize_log_extra(success=run_stats["success"], errors=run_stats["errors"]),
        )
        return run_stats

    def _resolve_source_runner(self, source: str, scan_root: Optional[str]):
        mapping = {
            SOURCE_SCANNER: lambda: self.ingest_scanned_projects(root=scan_root),
            SOURCE_GITHUB: self.run_github_sync,
            SOURCE_VERCEL: self.run_vercel_sync,
            SOURCE_ACTIVITY: self.refresh_activity,
        }
        return mapping.get(source)

    def _listing_failed(self, source: str, exc: SourceUnavailable) -> SyncSummary:
        error = sanitize_for_log(str(exc), key="error")
        logger.warning(
            "Source listing failed",
            extra=sanitize_log_extra(source=source, status_code=exc.status_code, error=error),
        )
        return SyncSummary(source=source, error=error)

    @staticmethod
    def _log_summary(summary: SyncSummary) -> None:
        logger.info(
            "Sync pass completed",
            extra=sanitize_log_extra(
                source=summary.source,
                total=summary.total,
                inserted=summary.inserted,
                updated=summary.updated,
                failed=summary.failed,
                events=summary.events,
                redundant=summary.redundant,
            ),
        )
