"""Dependency-manifest classifier.

Each axis is an ordered list of ``(predicate, label)`` rules evaluated top to
bottom; the first predicate that holds names the axis value. Tags are the
exception: every matching tag rule contributes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Callable, Iterable, Mapping, Optional, Sequence

Predicate = Callable[["Manifest"], bool]
Rule = tuple[Predicate, str]


@dataclass(slots=True)
class ManifestOverrides:
    """Fields a project pins explicitly in its override file."""

    framework: Optional[str] = None
    backend_framework: Optional[str] = None
    database: Optional[str] = None
    auth: Optional[str] = None
    tags: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "ManifestOverrides":
        def _text(*keys: str) -> Optional[str]:
            for key in keys:
                value = payload.get(key)
                if isinstance(value, str) and value.strip():
                    return value.strip()
            return None

        raw_tags = payload.get("tags")
        tags = [str(tag).strip() for tag in raw_tags if str(tag).strip()] if isinstance(raw_tags, list) else []
        return cls(
            framework=_text("framework", "primaryFramework"),
            backend_framework=_text("backendFramework", "backend_framework"),
            database=_text("database", "primaryDB", "db"),
            auth=_text("auth", "primaryAuth"),
            tags=tags,
        )


@dataclass(slots=True)
class Manifest:
    """Declared dependencies (normal and dev merged) plus marker files on disk."""

    dependencies: dict[str, str] = field(default_factory=dict)
    marker_files: set[str] = field(default_factory=set)
    overrides: Optional[ManifestOverrides] = None

    @classmethod
    def from_package_json(
        cls,
        package: Mapping[str, Any],
        marker_files: Iterable[str] = (),
        overrides: Optional[ManifestOverrides] = None,
    ) -> "Manifest":
        dependencies: dict[str, str] = {}
        for section in ("dependencies", "devDependencies"):
            block = package.get(section)
            if isinstance(block, Mapping):
                dependencies.update({str(name): str(version) for name, version in block.items()})
        return cls(dependencies=dependencies, marker_files=set(marker_files), overrides=overrides)

    def has(self, *names: str) -> bool:
        return any(name in self.dependencies for name in names)

    def has_prefix(self, *prefixes: str) -> bool:
        return any(dep.startswith(prefix) for dep in self.dependencies for prefix in prefixes)

    def has_marker(self, *names: str) -> bool:
        return any(name in self.marker_files for name in names)


@dataclass(slots=True)
class ClassificationSnapshot:
    primary_framework: Optional[str] = None
    backend_framework: Optional[str] = None
    primary_db: Optional[str] = None
    primary_auth: Optional[str] = None
    tags: list[str] = field(default_factory=list)
    last_scanned_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def empty(cls) -> "ClassificationSnapshot":
        return cls()


def deps(*names: str) -> Predicate:
    return lambda manifest: manifest.has(*names)


def prefixed(*prefixes: str) -> Predicate:
    return lambda manifest: manifest.has_prefix(*prefixes)


def markers(*names: str) -> Predicate:
    return lambda manifest: manifest.has_marker(*names)


def all_of(*predicates: Predicate) -> Predicate:
    return lambda manifest: all(predicate(manifest) for predicate in predicates)


def any_of(*predicates: Predicate) -> Predicate:
    return lambda manifest: any(predicate(manifest) for predicate in predicates)


META_FRAMEWORKS = ("Next.js", "Nuxt", "Remix", "SvelteKit", "Astro")
MOBILE_FRAMEWORKS = ("Expo", "React Native", "Ionic", "Capacitor")
BACKEND_FRAMEWORKS = ("Express", "Fastify", "Hono", "NestJS", "Koa", "Elysia")

FRAMEWORK_RULES: Sequence[Rule] = (
    # Meta-frameworks wrap a base library and are reported instead of it.
    (deps("next"), "Next.js"),
    (deps("nuxt"), "Nuxt"),
    (deps("@remix-run/react", "@remix-run/node"), "Remix"),
    (deps("@sveltejs/kit"), "SvelteKit"),
    (deps("astro"), "Astro"),
    (deps("expo"), "Expo"),
    (deps("react-native"), "React Native"),
    (deps("@ionic/react", "@ionic/vue", "@ionic/angular"), "Ionic"),
    (deps("@capacitor/core"), "Capacitor"),
    # Bundlers before the libraries they bundle.
    (deps("vite"), "Vite"),
    (deps("vue"), "Vue"),
    (deps("svelte"), "Svelte"),
    (deps("@angular/core"), "Angular"),
    (deps("solid-js"), "Solid"),
    (deps("react"), "React"),
)

BACKEND_RULES: Sequence[Rule] = (
    (deps("express"), "Express"),
    (deps("fastify"), "Fastify"),
    (deps("hono"), "Hono"),
    (deps("@nestjs/core"), "NestJS"),
    (deps("koa"), "Koa"),
    (deps("elysia"), "Elysia"),
)

_TURSO = deps("@libsql/client", "@turso/client")
_DRIZZLE = any_of(deps("drizzle-orm"), markers("drizzle.config.ts", "drizzle.config.js", "drizzle.config.mjs"))
_PRISMA = any_of(deps("@prisma/client", "prisma"), markers("prisma/schema.prisma", "prisma"))
_POSTGRES = deps("pg", "postgres")

DATABASE_RULES: Sequence[Rule] = (
    # ORM + driver composites.
    (all_of(_DRIZZLE, _TURSO), "Drizzle + Turso"),
    (all_of(_DRIZZLE, deps("@neondatabase/serverless")), "Drizzle + Neon"),
    (all_of(_DRIZZLE, _POSTGRES), "Drizzle + Postgres"),
    (all_of(_PRISMA, deps("@planetscale/database")), "Prisma + PlanetScale"),
    # ORMs.
    (_PRISMA, "Prisma"),
    (_DRIZZLE, "Drizzle ORM"),
    (deps("mongoose"), "Mongoose"),
    (deps("typeorm"), "TypeORM"),
    # Managed backends beat the drivers underneath them.
    (deps("@supabase/supabase-js", "@supabase/auth-helpers-nextjs", "@supabase/ssr"), "Supabase"),
    (any_of(deps("convex"), markers("convex.json", "convex")), "Convex"),
    (any_of(deps("firebase", "firebase-admin"), markers("firebase.json")), "Firebase"),
    (any_of(deps("pocketbase"), markers("pb_data")), "PocketBase"),
    # Drivers.
    (_TURSO, "Turso"),
    (deps("@neondatabase/serverless"), "Neon"),
    (_POSTGRES, "PostgreSQL"),
    (deps("mongodb"), "MongoDB"),
    (deps("mysql2", "mysql"), "MySQL"),
    (deps("better-sqlite3", "sqlite3"), "SQLite"),
    (deps("redis", "ioredis", "@upstash/redis"), "Redis"),
)

AUTH_RULES: Sequence[Rule] = (
    # Dedicated auth libraries.
    (deps("next-auth", "@auth/core", "auth"), "NextAuth"),
    (prefixed("@clerk/"), "Clerk"),
    (deps("lucia", "lucia-auth"), "Lucia"),
    (deps("better-auth"), "Better Auth"),
    (prefixed("@auth0/"), "Auth0"),
    (deps("@supabase/supabase-js", "@supabase/auth-helpers-nextjs", "@supabase/ssr"), "Supabase Auth"),
    (deps("firebase"), "Firebase Auth"),
    # Generic session libraries.
    (prefixed("passport"), "Passport"),
    (deps("iron-session"), "iron-session"),
    (deps("express-session"), "express-session"),
)

TAG_RULES: Sequence[Rule] = (
    # UI kits
    (any_of(prefixed("@radix-ui/"), lambda manifest: any("shadcn" in dep for dep in manifest.dependencies)), "shadcn/ui"),
    (prefixed("@mui/"), "Material UI"),
    (prefixed("@chakra-ui/"), "Chakra UI"),
    # Styling
    (any_of(deps("tailwindcss"), markers("tailwind.config.js", "tailwind.config.cjs", "tailwind.config.ts", "tailwind.config.mjs")), "Tailwind"),
    (deps("styled-components"), "styled-components"),
    # Data fetching
    (deps("trpc", "@trpc/server", "@trpc/client"), "tRPC"),
    (deps("@tanstack/react-query", "react-query"), "React Query"),
    (deps("swr"), "SWR"),
    (deps("graphql", "@apollo/client", "@apollo/server", "urql"), "GraphQL"),
    # State management
    (deps("zustand"), "Zustand"),
    (deps("redux", "@reduxjs/toolkit"), "Redux"),
    (deps("jotai"), "Jotai"),
    (deps("recoil"), "Recoil"),
    # Testing
    (deps("vitest"), "Vitest"),
    (deps("jest"), "Jest"),
    (deps("@playwright/test"), "Playwright"),
    (deps("cypress"), "Cypress"),
    # Language
    (deps("typescript"), "TypeScript"),
)


def first_match(rules: Sequence[Rule], manifest: Manifest) -> Optional[str]:
    for predicate, label in rules:
        if predicate(manifest):
            return label
    return None


def all_matches(rules: Sequence[Rule], manifest: Manifest) -> list[str]:
    return [label for predicate, label in rules if predicate(manifest)]


def merge_tags(*groups: Iterable[str]) -> list[str]:
    """Union tag groups, de-duplicated case-insensitively, keeping first spelling."""
    seen: dict[str, str] = {}
    for group in groups:
        for tag in group:
            cleaned = str(tag).strip()
            if cleaned and cleaned.lower() not in seen:
                seen[cleaned.lower()] = cleaned
    return sorted(seen.values(), key=str.lower)


def apply_overrides(snapshot: ClassificationSnapshot, overrides: Optional[ManifestOverrides]) -> ClassificationSnapshot:
    """Explicit override fields win; override tags are unioned with derived tags."""
    if overrides is None:
        return snapshot
    return ClassificationSnapshot(
        primary_framework=overrides.framework or snapshot.primary_framework,
        backend_framework=overrides.backend_framework or snapshot.backend_framework,
        primary_db=overrides.database or snapshot.primary_db,
        primary_auth=overrides.auth or snapshot.primary_auth,
        tags=merge_tags(snapshot.tags, overrides.tags),
        last_scanned_at=snapshot.last_scanned_at,
    )


def classify_manifest(manifest: Optional[Manifest], *, scanned_at: Optional[datetime] = None) -> ClassificationSnapshot:
    """Derive a classification snapshot from a manifest; None yields an empty one."""
    scanned_at = scanned_at or datetime.now(UTC)
    if manifest is None:
        return ClassificationSnapshot(last_scanned_at=scanned_at)

    derived = ClassificationSnapshot(
        primary_framework=first_match(FRAMEWORK_RULES, manifest),
        backend_framework=first_match(BACKEND_RULES, manifest),
        primary_db=first_match(DATABASE_RULES, manifest),
        primary_auth=first_match(AUTH_RULES, manifest),
        tags=merge_tags(all_matches(TAG_RULES, manifest)),
        last_scanned_at=scanned_at,
    )
    return apply_overrides(derived, manifest.overrides)
