"""Source adapters and the local filesystem scanner."""

from catalog.crawlers.base import CursorPagedSource, OffsetPagedSource, PagedSource, sanitize_for_log, sanitize_log_extra
from catalog.crawlers.contracts import Page, PagedFetch
from catalog.crawlers.github import GitHubSource
from catalog.crawlers.vercel import VercelSource

__all__ = [
    "CursorPagedSource",
    "GitHubSource",
    "OffsetPagedSource",
    "Page",
    "PagedFetch",
    "PagedSource",
    "VercelSource",
    "sanitize_for_log",
    "sanitize_log_extra",
]
