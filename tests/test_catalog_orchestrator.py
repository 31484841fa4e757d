from __future__ import annotations

import asyncio
from typing import Any

import pytest

from catalog.config.settings import Settings
from catalog.crawlers.scanner import DetectedProject
from catalog.errors import ConfigurationMissing, ManifestUnreadable, SourceUnavailable
from catalog.models import ProjectStatus, Provenance
from catalog.orchestrator import CatalogSyncOrchestrator
from catalog.services.classifier import Manifest


def _config(**overrides: Any) -> Settings:
    values = {
        "MAX_CONCURRENT_REQUESTS": 5,
        "PROJECT_TIMEOUT_SECONDS": 1.0,
        "ACTIVITY_WINDOW_DAYS": 30,
        "GITHUB_TOKEN": None,
        "VERCEL_TOKEN": None,
    }
    values.update(overrides)
    return Settings(**values)


def _unconfigured(setting: str):
    def factory():
        raise ConfigurationMissing(setting)

    return factory


class FakeGitHub:
    def __init__(self, repos: list[dict[str, Any]], manifests: dict[str, Any] | None = None) -> None:
        self.repos = repos
        self.manifests = manifests or {}
        self.commits: dict[str, list[dict[str, Any]]] = {}
        self.closed = False

    async def __aenter__(self) -> "FakeGitHub":
        return self

    async def __aexit__(self, *_: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        self.closed = True

    async def list_repositories(self, *, max_pages=None):
        return list(self.repos)

    async def fetch_manifest(self, slug: str):
        manifest = self.manifests.get(slug)
        if isinstance(manifest, Exception):
            raise manifest
        return manifest

    async def list_root_entries(self, slug: str):
        return {"package.json"}

    async def list_commits(self, slug: str, *, since=None, max_pages=None):
        return self.commits.get(slug, [])


class FakeVercel:
    def __init__(self, projects: list[dict[str, Any]], deployments: dict[str, list[dict[str, Any]]] | None = None) -> None:
        self.projects = projects
        self.deployments = deployments or {}

    async def __aenter__(self) -> "FakeVercel":
        return self

    async def __aexit__(self, *_: Any) -> None:
        return None

    async def aclose(self) -> None:
        return None

    async def list_projects(self, *, max_pages=None):
        return list(self.projects)

    async def list_deployments(self, project_id: str, *, since=None, max_pages=None):
        return self.deployments.get(project_id, [])


def _orchestrator(store, *, github=None, vercel=None, **config) -> CatalogSyncOrchestrator:
    return CatalogSyncOrchestrator(
        store=store,
        github_factory=(lambda: github) if github is not None else _unconfigured("GITHUB_TOKEN"),
        vercel_factory=(lambda: vercel) if vercel is not None else _unconfigured("VERCEL_TOKEN"),
        config=_config(**config),
    )


@pytest.mark.asyncio
async def test_run_batch_isolates_one_failure_and_bounds_concurrency(store) -> None:
    orchestrator = _orchestrator(store)
    in_flight = 0
    peak = 0
    chunk_starts: list[int] = []

    async def worker(item: int) -> bool:
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        if item % 5 == 0:
            chunk_starts.append(in_flight)
        await asyncio.sleep(0.01)
        in_flight -= 1
        if item == 7:
            raise SourceUnavailable("github", 500, "boom")
        return True

    summary = await orchestrator.run_batch(list(range(12)), worker, label="test")

    assert summary.total == 12
    assert summary.inserted == 11
    assert summary.failed == 1
    assert summary.failures[0].identity == "7"
    assert "HTTP 500" in summary.failures[0].message
    assert peak == 5
    # Each chunk starts only after the previous one drained.
    assert chunk_starts == [1, 1, 1]


@pytest.mark.asyncio
async def test_run_batch_counts_timeouts_as_failures(store) -> None:
    orchestrator = _orchestrator(store, PROJECT_TIMEOUT_SECONDS=0.01)

    async def worker(item: str) -> bool:
        if item == "slow":
            await asyncio.sleep(1)
        return False

    summary = await orchestrator.run_batch(["fast", "slow"], worker, label="test")

    assert summary.updated == 1
    assert summary.failed == 1
    assert "timed out" in summary.failures[0].message


@pytest.mark.asyncio
async def test_github_sync_classifies_and_merges(store) -> None:
    github = FakeGitHub(
        repos=[
            {
                "full_name": "me/billing-api",
                "name": "billing-api",
                "html_url": "https://github.com/me/billing-api",
                "description": None,
                "language": "TypeScript",
                "pushed_at": "2026-05-01T10:00:00Z",
            },
            {"full_name": "me/old", "name": "old", "archived": True, "language": "Go"},
            {"full_name": "me/broken", "name": "broken", "language": "Python"},
        ],
        manifests={
            "me/billing-api": {"dependencies": {"hono": "4.0.0", "drizzle-orm": "0.30", "@libsql/client": "0.5"}},
            "me/broken": ManifestUnreadable("github:me/broken/package.json", "bad json"),
        },
    )
    orchestrator = _orchestrator(store, github=github)

    summary = await orchestrator.run_github_sync()

    assert (summary.total, summary.inserted, summary.failed) == (3, 3, 0)
    api = store.get("github:me/billing-api")
    assert api.source == Provenance.HOSTED.value
    assert api.category == "Backend"
    assert api.description == "API service built with Hono and Drizzle + Turso"
    assert api.description_generated is True
    snapshot = store.get_snapshot(api.id)
    assert snapshot.backend_framework == "Hono"
    assert snapshot.primary_db == "Drizzle + Turso"
    assert store.get("github:me/old").status == ProjectStatus.REDUNDANT.value
    broken = store.get("github:me/broken")
    assert broken.category == "Backend"
    assert store.get_snapshot(broken.id).primary_framework is None
    assert github.closed is True


@pytest.mark.asyncio
async def test_github_resync_is_idempotent_and_flags_missing(store) -> None:
    repos = [{"full_name": "me/a", "name": "a"}, {"full_name": "me/b", "name": "b"}]
    orchestrator = _orchestrator(store, github=FakeGitHub(repos))
    await orchestrator.run_github_sync()

    orchestrator = _orchestrator(store, github=FakeGitHub(repos[:1]))
    summary = await orchestrator.run_github_sync()

    assert (summary.inserted, summary.updated, summary.redundant) == (0, 1, 1)
    assert len(store.list_projects()) == 2
    assert store.get("github:me/b").status == ProjectStatus.REDUNDANT.value


@pytest.mark.asyncio
async def test_github_listing_failure_is_reported(store) -> None:
    class FailingGitHub(FakeGitHub):
        async def list_repositories(self, *, max_pages=None):
            raise SourceUnavailable("github", 401, "Bad credentials")

    summary = await _orchestrator(store, github=FailingGitHub([])).run_github_sync()

    assert summary.success is False
    assert "401" in summary.error


@pytest.mark.asyncio
async def test_unconfigured_source_is_skipped(store) -> None:
    summary = await _orchestrator(store).run_vercel_sync()

    assert summary.skipped is True
    assert "VERCEL_TOKEN" in summary.reason


@pytest.mark.asyncio
async def test_vercel_sync_merges_into_github_record_and_records_deployments(store) -> None:
    await _orchestrator(store, github=FakeGitHub([{"full_name": "me/web", "name": "web"}])).run_github_sync()
    vercel = FakeVercel(
        [
            {
                "id": "prj_1",
                "name": "web-prod",
                "framework": "nextjs",
                "link": {"type": "github", "org": "me", "repo": "web"},
                "latestDeployments": [
                    {"uid": "dpl_2", "url": "web-2.vercel.app", "state": "READY", "created": 1767323045000},
                    {"uid": "dpl_1", "url": "web-1.vercel.app", "state": "ERROR", "created": 1767236645000},
                ],
            },
            {"id": "prj_2", "name": "landing"},
        ]
    )

    summary = await _orchestrator(store, vercel=vercel).run_vercel_sync()

    assert (summary.total, summary.inserted, summary.updated, summary.events) == (2, 1, 1, 2)
    web = store.get("github:me/web")
    assert web.vercel_project == "prj_1"
    assert web.vercel_url == "https://web-2.vercel.app"
    assert web.last_deployment_at is not None
    assert store.get("vercel:landing") is not None
    events = store.list_events(project_id=web.id)
    assert {event.event_metadata["status"] for event in events} == {"success", "failed"}


@pytest.mark.asyncio
async def test_vercel_sync_keeps_name_and_description_of_existing_record(store) -> None:
    github = FakeGitHub(
        [{"full_name": "me/billing-api", "name": "billing-api", "language": "TypeScript"}],
        manifests={"me/billing-api": {"dependencies": {"hono": "4.0.0", "drizzle-orm": "0.30", "@libsql/client": "0.5"}}},
    )
    await _orchestrator(store, github=github).run_github_sync()
    vercel = FakeVercel(
        [
            {
                "id": "prj_billing",
                "name": "billing-prod",
                "link": {"type": "github", "org": "me", "repo": "billing-api"},
            },
            {"id": "prj_docs", "name": "docs-site", "framework": "astro"},
        ]
    )

    await _orchestrator(store, vercel=vercel).run_vercel_sync()

    api = store.get("github:me/billing-api")
    assert api.name == "billing-api"
    assert api.description == "API service built with Hono and Drizzle + Turso"
    assert api.vercel_project == "prj_billing"
    placeholder = store.get("vercel:docs-site")
    assert placeholder.name == "docs-site"
    assert placeholder.description == "Documentation site built with Astro"
    assert placeholder.description_generated is True


@pytest.mark.asyncio
async def test_github_sync_does_not_flag_records_created_by_vercel(store) -> None:
    vercel = FakeVercel([{"id": "prj_site", "name": "site", "link": {"type": "github", "org": "acme", "repo": "site"}}])
    await _orchestrator(store, vercel=vercel).run_vercel_sync()
    assert store.get("github:acme/site").origin == "vercel"

    summary = await _orchestrator(store, github=FakeGitHub([{"full_name": "me/a", "name": "a"}])).run_github_sync()

    assert summary.redundant == 0
    assert store.get("github:acme/site").status == ProjectStatus.ACTIVE.value
    assert store.get("github:me/a").origin == "github"


@pytest.mark.asyncio
async def test_ingest_scanned_projects(store) -> None:
    detected = DetectedProject(
        name="dashboard",
        path="/work/dashboard",
        manifest=Manifest(dependencies={"next": "14", "react": "18", "tailwindcss": "3"}),
        package_manager="pnpm",
        language="TypeScript",
    )

    summary = await _orchestrator(store).ingest_scanned_projects(projects=[detected])

    assert summary.inserted == 1
    project = store.get("/work/dashboard")
    assert project.source == Provenance.SCANNER.value
    assert project.package_manager == "pnpm"
    assert project.category == "Fullstack"
    assert project.description == "Dashboard built with Next.js"
    assert store.get_snapshot(project.id).tags == ["Tailwind"]


@pytest.mark.asyncio
async def test_refresh_activity_appends_events_and_updates_timestamps(store) -> None:
    github = FakeGitHub([{"full_name": "me/web", "name": "web"}])
    await _orchestrator(store, github=github).run_github_sync()
    project = store.get("github:me/web")
    github.commits["me/web"] = [
        {
            "sha": "a" * 40,
            "commit": {"message": "First", "author": {"name": "Me", "date": "2026-05-01T10:00:00Z"}},
        },
        {
            "sha": "b" * 40,
            "commit": {"message": "Second\n\nbody", "author": {"name": "Me", "date": "2026-05-02T10:00:00Z"}},
        },
    ]

    orchestrator = _orchestrator(store, github=github)
    first = await orchestrator.refresh_activity()
    second = await orchestrator.refresh_activity()

    assert first.events == 2
    assert second.events == 0
    events = store.list_events(project_id=project.id, event_type="commit")
    assert [event.title for event in events] == ["First", "Second"]
    assert store.get("github:me/web").last_commit_at.day == 2


@pytest.mark.asyncio
async def test_full_sync_skips_unconfigured_sources(store) -> None:
    result = await _orchestrator(store, github=FakeGitHub([{"full_name": "me/a", "name": "a"}])).run_full_sync(
        sources=["github", "vercel", "bogus"]
    )

    assert result["sources"]["github"]["inserted"] == 1
    assert result["sources"]["vercel"]["skipped"] is True
    assert result["sources"]["bogus"]["success"] is False
    assert result["success"] is False
