"""Category and description inference for catalog entries."""

from __future__ import annotations

from enum import Enum
import re
from typing import Iterable, Optional, Sequence

from catalog.services.classifier import BACKEND_FRAMEWORKS, META_FRAMEWORKS, MOBILE_FRAMEWORKS, ClassificationSnapshot


class Category(str, Enum):
    """Project category label"""
    FRONTEND = "Frontend"
    BACKEND = "Backend"
    FULLSTACK = "Fullstack"
    TOOLING = "Tooling"
    MOBILE = "Mobile"
    UNKNOWN = "Unknown"


TOOLING_TAGS = frozenset({"tooling", "cli", "script", "scripts"})
MOBILE_TAGS = frozenset({"mobile", "ios", "android"})
API_TAGS = frozenset({"api", "graphql", "rest", "server", "backend"})

LANGUAGE_CATEGORIES: dict[str, Category] = {
    "typescript": Category.FRONTEND,
    "javascript": Category.FRONTEND,
    "html": Category.FRONTEND,
    "css": Category.FRONTEND,
    "scss": Category.FRONTEND,
    "vue": Category.FRONTEND,
    "svelte": Category.FRONTEND,
    "astro": Category.FRONTEND,
    "mdx": Category.FRONTEND,
    "python": Category.BACKEND,
    "go": Category.BACKEND,
    "rust": Category.BACKEND,
    "java": Category.BACKEND,
    "kotlin": Category.BACKEND,
    "ruby": Category.BACKEND,
    "php": Category.BACKEND,
    "c#": Category.BACKEND,
    "elixir": Category.BACKEND,
    "scala": Category.BACKEND,
    "shell": Category.TOOLING,
    "powershell": Category.TOOLING,
    "makefile": Category.TOOLING,
    "dockerfile": Category.TOOLING,
    "nix": Category.TOOLING,
    "lua": Category.TOOLING,
    "vim script": Category.TOOLING,
}

# Ordered: the first keyword found in the lower-cased project name wins.
PROJECT_TYPE_KEYWORDS: Sequence[tuple[str, str]] = (
    ("api", "API service"),
    ("cli", "Command-line tool"),
    ("bot", "Bot"),
    ("dashboard", "Dashboard"),
    ("admin", "Admin panel"),
    ("portfolio", "Portfolio site"),
    ("blog", "Blog"),
    ("docs", "Documentation site"),
    ("landing", "Landing page"),
    ("shop", "E-commerce store"),
    ("store", "E-commerce store"),
    ("extension", "Browser extension"),
    ("plugin", "Plugin"),
    ("game", "Game"),
    ("tracker", "Tracking app"),
)


def _lower_tags(tags: Iterable[str]) -> set[str]:
    return {str(tag).strip().lower() for tag in tags}


def infer_category(
    *,
    tags: Iterable[str] = (),
    framework: Optional[str] = None,
    backend_framework: Optional[str] = None,
    language: Optional[str] = None,
) -> Category:
    """Precedence cascade; the first rule that applies names the category."""
    lowered = _lower_tags(tags)

    if lowered & TOOLING_TAGS:
        return Category.TOOLING
    if lowered & MOBILE_TAGS or framework in MOBILE_FRAMEWORKS:
        return Category.MOBILE
    if framework and backend_framework:
        return Category.FULLSTACK
    if backend_framework and backend_framework in BACKEND_FRAMEWORKS:
        return Category.BACKEND
    if framework:
        return Category.FULLSTACK if framework in META_FRAMEWORKS else Category.FRONTEND
    if lowered & API_TAGS:
        return Category.BACKEND
    if language:
        return LANGUAGE_CATEGORIES.get(language.strip().lower(), Category.UNKNOWN)
    return Category.UNKNOWN


def categorize_snapshot(snapshot: ClassificationSnapshot, language: Optional[str] = None) -> Category:
    return infer_category(
        tags=snapshot.tags,
        framework=snapshot.primary_framework,
        backend_framework=snapshot.backend_framework,
        language=language,
    )


def humanize_name(name: str) -> str:
    """``my-cool_app`` -> ``My Cool App``."""
    words = [word for word in re.split(r"[-_\s./]+", name.strip()) if word]
    return " ".join(word[:1].upper() + word[1:] for word in words)


def detect_project_type(name: str) -> Optional[str]:
    lowered = name.lower()
    for keyword, project_type in PROJECT_TYPE_KEYWORDS:
        if keyword in lowered:
            return project_type
    return None


def tech_parts(snapshot: ClassificationSnapshot) -> list[str]:
    parts: list[str] = []
    for value in (snapshot.primary_framework, snapshot.backend_framework, snapshot.primary_db):
        if value and value not in parts:
            parts.append(value)
    return parts


def join_parts(parts: Sequence[str]) -> str:
    if len(parts) <= 1:
        return "".join(parts)
    return f"{', '.join(parts[:-1])} and {parts[-1]}"


def synthesize_description(
    name: str,
    snapshot: ClassificationSnapshot,
    language: Optional[str] = None,
) -> str:
    """Build a description for a project that has no human-authored one."""
    parts = tech_parts(snapshot)
    project_type = detect_project_type(name)

    if project_type and parts:
        return f"{project_type} built with {join_parts(parts)}"

    label = humanize_name(name) or name
    if parts:
        return f"{label} built with {join_parts(parts)}"
    if language:
        return f"{label} written in {language}"
    return label
