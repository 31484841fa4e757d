"""Local filesystem scanner.

Discovers project directories (any directory holding a ``package.json``) and
collects what the classifier and the catalog need about each: dependencies,
marker files, package manager, git remote slug, and a linked Vercel project.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import json
import logging
import os
from pathlib import Path
import re
import subprocess
from typing import Any, Optional

from catalog.config.settings import settings
from catalog.errors import ManifestUnreadable
from catalog.services.classifier import Manifest, ManifestOverrides

logger = logging.getLogger(__name__)

EXCLUDED_DIRS = frozenset({"node_modules", ".git", "dist", ".next", ".turbo", ".vercel", ".pnpm-store"})

MARKER_PATTERNS = (
    "next.config.js",
    "next.config.ts",
    "next.config.mjs",
    "prisma",
    "prisma/schema.prisma",
    "drizzle.config.ts",
    "drizzle.config.js",
    "drizzle.config.mjs",
    "convex.json",
    "convex",
    "firebase.json",
    "pb_data",
    "tailwind.config.js",
    "tailwind.config.cjs",
    "tailwind.config.ts",
    "tailwind.config.mjs",
    "tsconfig.json",
)

# Checked in order; the first lockfile present names the package manager.
LOCKFILES = (
    ("pnpm-lock.yaml", "pnpm"),
    ("yarn.lock", "yarn"),
    ("bun.lockb", "bun"),
    ("bun.lock", "bun"),
    ("package-lock.json", "npm"),
)

SSH_REMOTE = re.compile(r"^[\w.-]+@[^:]+:(?P<owner>[^/]+)/(?P<repo>.+?)(?:\.git)?/?$")
HTTPS_REMOTE = re.compile(r"^(?:https?|ssh|git)://(?:[^@/]+@)?[^/]+/(?P<owner>[^/]+)/(?P<repo>.+?)(?:\.git)?/?$")

GIT_TIMEOUT_SECONDS = 5


@dataclass(slots=True)
class DetectedProject:
    """Everything the scanner learned about one project directory."""

    name: str
    path: str
    manifest: Optional[Manifest]
    package_manager: Optional[str] = None
    repo_slug: Optional[str] = None
    vercel_project: Optional[str] = None
    description: Optional[str] = None
    language: Optional[str] = None
    marker_files: list[str] = field(default_factory=list)


def find_projects(root: str | os.PathLike[str]) -> list[Path]:
    """Directories under ``root`` that hold a ``package.json``.

    A project directory is not descended into, so nested packages of a
    monorepo are reported once, at the root that owns them.
    """
    found: list[Path] = []
    queue = [Path(root)]
    while queue:
        current = queue.pop()
        try:
            entries = list(current.iterdir())
        except OSError as exc:
            logger.debug("Skipping unreadable directory %s: %s", current, exc)
            continue

        if any(entry.name == "package.json" and entry.is_file() for entry in entries):
            found.append(current)
            continue
        for entry in entries:
            if entry.is_dir() and not entry.is_symlink() and entry.name not in EXCLUDED_DIRS:
                queue.append(entry)
    return sorted(found)


def detect_package_manager(path: str | os.PathLike[str]) -> Optional[str]:
    base = Path(path)
    for lockfile, manager in LOCKFILES:
        if (base / lockfile).exists():
            return manager
    return None


def detect_marker_files(path: str | os.PathLike[str]) -> list[str]:
    base = Path(path)
    return [marker for marker in MARKER_PATTERNS if (base / marker).exists()]


def _read_json(file_path: Path) -> Any:
    try:
        return json.loads(file_path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise ManifestUnreadable(str(file_path), "file not found") from exc
    except (OSError, UnicodeDecodeError, ValueError) as exc:
        raise ManifestUnreadable(str(file_path), str(exc)) from exc


def read_manifest(path: str | os.PathLike[str]) -> dict[str, Any]:
    """Parsed ``package.json`` of a project directory."""
    manifest_path = Path(path) / "package.json"
    package = _read_json(manifest_path)
    if not isinstance(package, dict):
        raise ManifestUnreadable(str(manifest_path), "manifest is not a JSON object")
    return package


def read_manifest_overrides(path: str | os.PathLike[str], filename: Optional[str] = None) -> Optional[ManifestOverrides]:
    override_path = Path(path) / (filename or settings.MANIFEST_OVERRIDE_FILE)
    if not override_path.is_file():
        return None
    try:
        payload = _read_json(override_path)
    except ManifestUnreadable as exc:
        logger.warning("Ignoring unreadable override file", extra={"path": exc.path, "reason": exc.reason})
        return None
    if not isinstance(payload, dict):
        logger.warning("Ignoring override file that is not a JSON object", extra={"path": str(override_path)})
        return None
    return ManifestOverrides.from_dict(payload)


def extract_repo_slug(remote_url: Optional[str]) -> Optional[str]:
    """``owner/repo`` from an SSH or HTTPS git remote URL."""
    if not remote_url:
        return None
    remote_url = remote_url.strip()
    match = SSH_REMOTE.match(remote_url) or HTTPS_REMOTE.match(remote_url)
    if not match:
        return None
    return f"{match.group('owner')}/{match.group('repo')}"


def detect_git_remote(path: str | os.PathLike[str]) -> Optional[str]:
    try:
        result = subprocess.run(
            ["git", "config", "--get", "remote.origin.url"],
            cwd=str(path),
            capture_output=True,
            text=True,
            timeout=GIT_TIMEOUT_SECONDS,
            check=False,
        )
    except (OSError, subprocess.TimeoutExpired) as exc:
        logger.debug("git remote lookup failed for %s: %s", path, exc)
        return None
    if result.returncode != 0 or not result.stdout.strip():
        return None
    return extract_repo_slug(result.stdout.strip())


def detect_vercel_link(path: str | os.PathLike[str]) -> Optional[str]:
    """Vercel project id from ``.vercel/project.json``, if the directory is linked."""
    link_path = Path(path) / ".vercel" / "project.json"
    if not link_path.is_file():
        return None
    try:
        payload = _read_json(link_path)
    except ManifestUnreadable:
        return None
    if not isinstance(payload, dict):
        return None
    return payload.get("projectId") or None


def _detect_language(manifest: Manifest) -> str:
    if manifest.has("typescript") or manifest.has_marker("tsconfig.json"):
        return "TypeScript"
    return "JavaScript"


def detect_project(path: str | os.PathLike[str], *, override_file: Optional[str] = None) -> DetectedProject:
    """Inspect one project directory.

    An unreadable manifest still yields a project, with ``manifest`` set to
    None so it is cataloged with an empty classification.
    """
    base = Path(path).resolve()
    marker_files = detect_marker_files(base)
    try:
        package = read_manifest(base)
    except ManifestUnreadable as exc:
        logger.warning(
            "Unreadable manifest, cataloging without classification",
            extra={"path": exc.path, "reason": exc.reason},
        )
        package, manifest = {}, None
    else:
        manifest = Manifest.from_package_json(
            package,
            marker_files=marker_files,
            overrides=read_manifest_overrides(base, override_file),
        )
    description = package.get("description")
    return DetectedProject(
        name=str(package.get("name") or base.name),
        path=str(base),
        manifest=manifest,
        package_manager=detect_package_manager(base),
        repo_slug=detect_git_remote(base),
        vercel_project=detect_vercel_link(base),
        description=description if isinstance(description, str) and description.strip() else None,
        language=_detect_language(manifest) if manifest is not None else None,
        marker_files=marker_files,
    )


def scan_projects(root: str | os.PathLike[str], *, override_file: Optional[str] = None) -> list[DetectedProject]:
    projects = [detect_project(directory, override_file=override_file) for directory in find_projects(root)]
    logger.info("Scanned %s for projects", root, extra={"found": len(projects)})
    return projects
