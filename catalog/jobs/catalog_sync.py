"""
Catalog sync job entry point.

Builds the store and orchestrator explicitly from settings, then runs the
selected sources. Usable as a scheduled handler (``run_catalog_sync``) or
as a module (``python -m catalog.jobs.catalog_sync github vercel``).
"""

from __future__ import annotations

import asyncio
import logging
import sys
from typing import Any, Iterable, Optional

from catalog.config.database import create_session_factory
from catalog.config.settings import Settings, settings as default_settings
from catalog.crawlers.base import sanitize_for_log
from catalog.errors import CatalogError
from catalog.orchestrator import ALL_SOURCES, CatalogSyncOrchestrator
from catalog.services.store import SQLAlchemyCatalogStore
from catalog.utils.logger import configure_catalog_logging

logger = logging.getLogger(__name__)

SOURCE_ALIASES = {
    "all": ALL_SOURCES,
    "full": ALL_SOURCES,
    "hosted": ("github", "vercel"),
    "local": ("scanner",),
    "scan": ("scanner",),
    "repos": ("github",),
    "deployments": ("vercel",),
    "refresh": ("activity",),
    "refresh-activity": ("activity",),
}


def normalize_source_selector(selector: Optional[str | Iterable[str]]) -> tuple[str, ...]:
    """
    Turn a source selector into an ordered tuple of known source names.

    Accepts None (every source), a comma separated string, or an iterable of
    names and aliases. Order follows the canonical source order; unknown
    names raise ValueError.
    """
    if selector is None:
        return ALL_SOURCES
    if isinstance(selector, str):
        tokens = [token for token in selector.replace(",", " ").split() if token]
    else:
        tokens = [str(token) for token in selector]
    if not tokens:
        return ALL_SOURCES

    requested: set[str] = set()
    for token in tokens:
        name = token.strip().lower()
        if name in SOURCE_ALIASES:
            requested.update(SOURCE_ALIASES[name])
        elif name in ALL_SOURCES:
            requested.add(name)
        else:
            raise ValueError(f"Unknown source: {token!r}")
    return tuple(source for source in ALL_SOURCES if source in requested)


def build_orchestrator(config: Settings | None = None) -> CatalogSyncOrchestrator:
    """Composition root. Fails fast with ConfigurationMissing without DATABASE_URL."""
    config = config or default_settings
    session_factory = create_session_factory(config.DATABASE_URL, echo=config.DEBUG, create_tables=True)
    store = SQLAlchemyCatalogStore(session_factory)
    return CatalogSyncOrchestrator(store=store, config=config)


async def run_catalog_sync(
    event: Optional[dict[str, Any]] = None,
    *,
    orchestrator: CatalogSyncOrchestrator | None = None,
    config: Settings | None = None,
) -> dict[str, Any]:
    """
    Run one catalog sync.

    Args:
        event: Optional mapping with ``source`` (selector) and ``scan_root``
        orchestrator: Prebuilt orchestrator, built from settings when omitted
        config: Settings override

    Returns:
        Dict with statusCode, the resolved sources and the run result
    """
    event = event or {}
    try:
        sources = normalize_source_selector(event.get("source"))
    except ValueError as exc:
        return {"statusCode": 400, "source": event.get("source"), "error": str(exc)}

    try:
        orchestrator = orchestrator or build_orchestrator(config)
    except CatalogError as exc:
        logger.error("Catalog sync could not start: %s", exc)
        return {"statusCode": 500, "source": list(sources), "error": sanitize_for_log(str(exc))}

    result = await orchestrator.run_full_sync(sources=sources, scan_root=event.get("scan_root"))
    return {"statusCode": 200 if result["success"] else 207, "source": list(sources), "result": result}


def main() -> None:
    """CLI entry point."""
    config = default_settings
    configure_catalog_logging(debug=config.DEBUG)
    args = sys.argv[1:]
    scan_root = None
    if "--scan-root" in args:
        index = args.index("--scan-root")
        scan_root = args[index + 1] if index + 1 < len(args) else None
        args = args[:index] + args[index + 2 :]

    response = asyncio.run(run_catalog_sync({"source": args or None, "scan_root": scan_root}, config=config))
    for source, summary in (response.get("result") or {}).get("sources", {}).items():
        print(
            f"{source}: total={summary['total']} inserted={summary['inserted']} "
            f"updated={summary['updated']} failed={summary['failed']}"
            + (f" skipped ({summary['reason']})" if summary["skipped"] else "")
        )
    if response.get("error"):
        print(f"error: {response['error']}")
    sys.exit(0 if response["statusCode"] == 200 else 1)


if __name__ == "__main__":
    main()
