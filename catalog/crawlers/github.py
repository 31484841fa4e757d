"""GitHub source adapter (offset pagination)."""

from __future__ import annotations

import base64
import binascii
from datetime import datetime
import json
import logging
from typing import Any
from urllib.parse import quote

import httpx

from catalog.config.settings import Settings, settings as default_settings
from catalog.crawlers.base import OffsetPagedSource, sanitize_log_extra
from catalog.crawlers.contracts import CommitPayload, ManifestPayload, RepoPayload
from catalog.errors import ManifestUnreadable, SourceUnavailable

logger = logging.getLogger(__name__)

GITHUB_API_VERSION = "2022-11-28"


class GitHubSource(OffsetPagedSource):
    """Repositories, commits and root manifests of the authenticated GitHub user."""

    source_name = "github"

    def __init__(
        self,
        *,
        token: str | None,
        base_url: str = "https://api.github.com",
        per_page: int = 100,
        timeout_seconds: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(
            token=token,
            base_url=base_url,
            per_page=per_page,
            timeout_seconds=timeout_seconds,
            transport=transport,
            headers={
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": GITHUB_API_VERSION,
            },
        )

    @classmethod
    def from_settings(cls, config: Settings | None = None, **kwargs: Any) -> "GitHubSource":
        config = config or default_settings
        return cls(
            token=config.GITHUB_TOKEN,
            base_url=config.GITHUB_API_URL,
            per_page=config.GITHUB_PER_PAGE,
            timeout_seconds=config.HTTP_TIMEOUT_SECONDS,
            **kwargs,
        )

    async def list_repositories(self, *, max_pages: int | None = None) -> list[RepoPayload]:
        return await self.collect(
            "/user/repos",
            {"sort": "updated", "affiliation": "owner"},
            max_pages=max_pages,
        )

    async def list_commits(
        self,
        repo_slug: str,
        *,
        since: datetime | None = None,
        max_pages: int | None = None,
    ) -> list[CommitPayload]:
        params: dict[str, Any] = {}
        if since is not None:
            params["since"] = since.strftime("%Y-%m-%dT%H:%M:%SZ")
        try:
            return await self.collect(f"/repos/{_slug_path(repo_slug)}/commits", params, max_pages=max_pages)
        except SourceUnavailable as exc:
            # GitHub answers 409 for a repository with no commits yet.
            if exc.status_code == 409:
                return []
            raise

    async def list_root_entries(self, repo_slug: str) -> set[str]:
        """Names of files and directories at the repository root."""
        try:
            data = await self._get_json(f"/repos/{_slug_path(repo_slug)}/contents/")
        except SourceUnavailable as exc:
            if exc.status_code == 404:
                return set()
            raise
        if not isinstance(data, list):
            return set()
        return {str(entry.get("name")) for entry in data if isinstance(entry, dict) and entry.get("name")}

    async def fetch_manifest(self, repo_slug: str) -> ManifestPayload | None:
        """Root ``package.json`` of a repository, or None when it has none."""
        path = f"/repos/{_slug_path(repo_slug)}/contents/package.json"
        try:
            data = await self._get_json(path)
        except SourceUnavailable as exc:
            if exc.status_code == 404:
                return None
            raise

        location = f"github:{repo_slug}/package.json"
        if not isinstance(data, dict) or data.get("encoding") != "base64":
            raise ManifestUnreadable(location, "unexpected contents payload")
        try:
            raw = base64.b64decode(str(data.get("content") or ""), validate=False)
            manifest = json.loads(raw.decode("utf-8"))
        except (binascii.Error, UnicodeDecodeError, ValueError) as exc:
            raise ManifestUnreadable(location, str(exc)) from exc
        if not isinstance(manifest, dict):
            raise ManifestUnreadable(location, "manifest is not a JSON object")

        logger.debug("Fetched remote manifest", extra=sanitize_log_extra(repo=repo_slug))
        return manifest


def _slug_path(repo_slug: str) -> str:
    owner, _, repo = repo_slug.strip().partition("/")
    return f"{quote(owner, safe='')}/{quote(repo, safe='')}"
