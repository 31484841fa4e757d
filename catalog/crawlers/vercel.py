"""Vercel source adapter (cursor pagination)."""

from __future__ import annotations

from datetime import datetime
from typing import Any

import httpx

from catalog.config.settings import Settings, settings as default_settings
from catalog.crawlers.base import CursorPagedSource
from catalog.crawlers.contracts import DeploymentPayload, VercelProjectPayload


class VercelSource(CursorPagedSource):
    """Projects and deployments of a Vercel account or team."""

    source_name = "vercel"
    items_keys = {"/v9/projects": "projects", "/v6/deployments": "deployments"}

    def __init__(
        self,
        *,
        token: str | None,
        team_id: str | None = None,
        base_url: str = "https://api.vercel.com",
        limit: int = 100,
        timeout_seconds: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(
            token=token,
            base_url=base_url,
            limit=limit,
            timeout_seconds=timeout_seconds,
            transport=transport,
        )
        self.team_id = team_id

    @classmethod
    def from_settings(cls, config: Settings | None = None, **kwargs: Any) -> "VercelSource":
        config = config or default_settings
        return cls(
            token=config.VERCEL_TOKEN,
            team_id=config.VERCEL_TEAM,
            base_url=config.VERCEL_API_URL,
            limit=config.VERCEL_PAGE_LIMIT,
            timeout_seconds=config.HTTP_TIMEOUT_SECONDS,
            **kwargs,
        )

    def default_params(self) -> dict[str, Any]:
        return {"teamId": self.team_id} if self.team_id else {}

    async def list_projects(self, *, max_pages: int | None = None) -> list[VercelProjectPayload]:
        return await self.collect("/v9/projects", max_pages=max_pages)

    async def list_deployments(
        self,
        project_id: str,
        *,
        since: datetime | None = None,
        max_pages: int | None = None,
    ) -> list[DeploymentPayload]:
        params: dict[str, Any] = {"projectId": project_id}
        if since is not None:
            params["since"] = int(since.timestamp() * 1000)
        return await self.collect("/v6/deployments", params, max_pages=max_pages)
