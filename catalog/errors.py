"""Error taxonomy for the catalog ingestion pipeline."""

from __future__ import annotations

from typing import Any, Sequence


class CatalogError(Exception):
    """Base class for all catalog pipeline errors."""


class SourceUnavailable(CatalogError):
    """An external source answered with a non-success status or not at all.

    Fatal to the single project pass that triggered it, never to the batch.
    """

    def __init__(self, source: str, status_code: int | None = None, body: str | None = None) -> None:
        self.source = source
        self.status_code = status_code
        self.body = body or ""
        status = f"HTTP {status_code}" if status_code is not None else "no response"
        super().__init__(f"{source} unavailable ({status}): {self.body[:200]}")


class ManifestUnreadable(CatalogError):
    """Dependency manifest is missing or cannot be parsed."""

    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Manifest unreadable at {path}: {reason}")


class IdentityConflict(CatalogError):
    """Secondary identity match produced more than one candidate."""

    def __init__(self, name: str, candidates: Sequence[Any]) -> None:
        self.name = name
        self.candidates = list(candidates)
        super().__init__(f"Ambiguous identity for {name!r}: {len(self.candidates)} candidates")


class ConfigurationMissing(CatalogError):
    """A required setting (credential, database URL) is not configured."""

    def __init__(self, setting: str) -> None:
        self.setting = setting
        super().__init__(f"{setting} not configured")


class ProjectNotFound(CatalogError):
    """No catalog entry exists for the given project id."""


class InvalidProjectUpdate(CatalogError):
    """A user-supplied project setting failed validation."""
