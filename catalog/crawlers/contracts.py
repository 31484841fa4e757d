"""Typed contracts for paginated source adapter responses."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Awaitable, Generic, Optional, Protocol, TypeVar


T = TypeVar("T")
C = TypeVar("C")


@dataclass(slots=True)
class Page(Generic[T, C]):
    """One page of records plus the cursor for the next request.

    ``next_cursor is None`` marks the end of the listing.
    """

    records: list[T] = field(default_factory=list)
    next_cursor: Optional[C] = None

    @property
    def is_last(self) -> bool:
        return self.next_cursor is None

    @property
    def is_empty(self) -> bool:
        return not self.records


class PagedFetch(Protocol[T, C]):
    """``PagedFetch(cursor) -> (records, next_cursor | done)``."""

    def __call__(self, cursor: Optional[C]) -> Awaitable[Page[T, C]]: ...


RepoPayload = dict[str, Any]
CommitPayload = dict[str, Any]
VercelProjectPayload = dict[str, Any]
DeploymentPayload = dict[str, Any]
ManifestPayload = dict[str, Any]

RepoPage = Page[RepoPayload, int]
CommitPage = Page[CommitPayload, int]
VercelProjectPage = Page[VercelProjectPayload, str]
DeploymentPage = Page[DeploymentPayload, str]
