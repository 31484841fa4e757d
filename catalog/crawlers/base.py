"""Base source adapter with shared HTTP, pagination and log redaction."""

from __future__ import annotations

from abc import ABC, abstractmethod
import logging
import re
from typing import Any, Generic, Mapping, Optional, TypeVar

import httpx

from catalog.config.settings import settings
from catalog.crawlers.contracts import Page, PagedFetch
from catalog.errors import ConfigurationMissing, SourceUnavailable

logger = logging.getLogger(__name__)

T = TypeVar("T")
C = TypeVar("C")

REDACTED = "***REDACTED***"
_SENSITIVE_KEYS = re.compile(r"(authorization|token|secret|api[_-]?key|password|session|cookie)", re.IGNORECASE)
_PAYLOAD_KEYS = {"body", "content", "payload", "raw"}
_INLINE_SECRETS = (
    re.compile(r"(bearer\s+)[^\s,;]+", re.IGNORECASE),
    re.compile(r"((?:access_token|token|api_key|apikey|secret)=)[^&\s,;]+", re.IGNORECASE),
    re.compile(r"\b(gh[pousr]_)[A-Za-z0-9]+\b"),
)
_MAX_LOG_STRING = 500


def _redact_text(text: str) -> str:
    for pattern in _INLINE_SECRETS:
        text = pattern.sub(lambda match: f"{match.group(1)}{REDACTED}", text)
    if len(text) > _MAX_LOG_STRING:
        text = text[:_MAX_LOG_STRING] + "..."
    return text


def sanitize_for_log(value: Any, key: str | None = None) -> Any:
    """Strip credentials and bulky payloads from values bound for logs or stats."""
    if key is not None and _SENSITIVE_KEYS.search(key):
        return REDACTED
    if key is not None and key.lower() in _PAYLOAD_KEYS and isinstance(value, str):
        return f"<redacted payload {len(value)} chars>"
    if isinstance(value, Mapping):
        return {str(k): sanitize_for_log(v, key=str(k)) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [sanitize_for_log(item) for item in value]
    if isinstance(value, str):
        return _redact_text(value)
    if value is None or isinstance(value, (int, float, bool)):
        return value
    return _redact_text(str(value))


def sanitize_log_extra(**fields: Any) -> dict[str, Any]:
    """Build a logging ``extra`` mapping with every field sanitized."""
    return {name: sanitize_for_log(value, key=name) for name, value in fields.items()}


class PagedSource(ABC, Generic[T, C]):
    """
    Single-pass paginated fetcher over one authenticated HTTP API

    Subclasses define how a cursor maps to request parameters and how the
    next cursor is derived. There is no retry here; a non-success status
    raises SourceUnavailable and the caller decides what to do.
    """

    source_name = "source"

    def __init__(
        self,
        *,
        token: str | None,
        base_url: str,
        timeout_seconds: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> None:
        if not token:
            raise ConfigurationMissing(f"{self.source_name.upper()}_TOKEN")

        request_headers = {
            "Authorization": f"Bearer {token}",
            "User-Agent": settings.USER_AGENT,
        }
        request_headers.update(headers or {})
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers=request_headers,
            timeout=timeout_seconds if timeout_seconds is not None else settings.HTTP_TIMEOUT_SECONDS,
            transport=transport,
        )

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _get(self, path: str, params: Mapping[str, Any] | None = None) -> httpx.Response:
        try:
            response = await self._client.get(path, params=dict(params or {}))
        except httpx.HTTPError as exc:
            logger.warning(
                "Source request failed without response",
                extra=sanitize_log_extra(source=self.source_name, path=path, error=f"{type(exc).__name__}: {exc}"),
            )
            raise SourceUnavailable(self.source_name, None, f"{type(exc).__name__}: {exc}") from exc
        return response

    async def _get_json(self, path: str, params: Mapping[str, Any] | None = None) -> Any:
        response = await self._get(path, params)
        if not response.is_success:
            body = response.text
            logger.warning(
                "Source request failed",
                extra=sanitize_log_extra(
                    source=self.source_name,
                    path=path,
                    params=dict(params or {}),
                    status_code=response.status_code,
                ),
            )
            raise SourceUnavailable(self.source_name, response.status_code, sanitize_for_log(body))
        return response.json()

    @abstractmethod
    async def fetch_page(
        self,
        path: str,
        cursor: Optional[C],
        params: Mapping[str, Any] | None = None,
    ) -> Page[T, C]:
        """Fetch one page of ``path`` starting at ``cursor``."""

    def pager(self, path: str, params: Mapping[str, Any] | None = None) -> PagedFetch[T, C]:
        """Bind a listing endpoint into a ``PagedFetch`` callable."""

        async def _fetch(cursor: Optional[C]) -> Page[T, C]:
            return await self.fetch_page(path, cursor, params)

        return _fetch

    async def collect(
        self,
        path: str,
        params: Mapping[str, Any] | None = None,
        *,
        max_pages: int | None = None,
    ) -> list[T]:
        """Walk every page of a listing and return all records in order."""
        fetch = self.pager(path, params)
        records: list[T] = []
        cursor: Optional[C] = None
        pages = 0
        while True:
            page = await fetch(cursor)
            records.extend(page.records)
            pages += 1
            if page.is_last:
                break
            if max_pages is not None and pages >= max_pages:
                logger.info(
                    "Pagination stopped at page cap",
                    extra=sanitize_log_extra(source=self.source_name, path=path, max_pages=max_pages),
                )
                break
            cursor = page.next_cursor
        return records


class OffsetPagedSource(PagedSource[dict[str, Any], int]):
    """``page``/``per_page`` pagination; a short or empty page ends the listing."""

    def __init__(self, *, per_page: int = 100, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.per_page = per_page

    async def fetch_page(
        self,
        path: str,
        cursor: Optional[int],
        params: Mapping[str, Any] | None = None,
    ) -> Page[dict[str, Any], int]:
        page_number = cursor or 1
        query = dict(params or {})
        query.update({"page": page_number, "per_page": self.per_page})
        data = await self._get_json(path, query)
        records = [item for item in data if isinstance(item, dict)] if isinstance(data, list) else []
        if not records or len(records) < self.per_page:
            return Page(records=records, next_cursor=None)
        return Page(records=records, next_cursor=page_number + 1)


class CursorPagedSource(PagedSource[dict[str, Any], str]):
    """``limit``/``until`` pagination driven by the response's ``pagination.next`` token."""

    items_keys: Mapping[str, str] = {}

    def __init__(self, *, limit: int = 100, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.limit = limit

    def default_params(self) -> dict[str, Any]:
        return {}

    def items_key(self, path: str) -> str:
        """Response field holding the record array for ``path``."""
        return self.items_keys.get(path, "items")

    async def fetch_page(
        self,
        path: str,
        cursor: Optional[str],
        params: Mapping[str, Any] | None = None,
    ) -> Page[dict[str, Any], str]:
        query = self.default_params()
        query.update(params or {})
        query["limit"] = self.limit
        if cursor:
            query["until"] = cursor

        data = await self._get_json(path, query)
        if not isinstance(data, dict):
            return Page(records=[], next_cursor=None)

        items = data.get(self.items_key(path))
        records = [item for item in items if isinstance(item, dict)] if isinstance(items, list) else []
        pagination = data.get("pagination") if isinstance(data.get("pagination"), dict) else {}
        next_token = pagination.get("next")
        return Page(records=records, next_cursor=str(next_token) if next_token else None)
