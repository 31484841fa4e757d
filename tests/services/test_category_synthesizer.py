import pytest

from catalog.services.classifier import ClassificationSnapshot
from catalog.services.synthesizer import (
    Category,
    humanize_name,
    infer_category,
    synthesize_description,
)


def test_tooling_tag_always_wins() -> None:
    category = infer_category(
        tags=["CLI", "api", "mobile"],
        framework="Next.js",
        backend_framework="Express",
        language="TypeScript",
    )

    assert category == Category.TOOLING


@pytest.mark.parametrize(
    "kwargs,expected",
    [
        ({"framework": "Expo"}, Category.MOBILE),
        ({"tags": ["ios"], "framework": "React"}, Category.MOBILE),
        ({"framework": "React", "backend_framework": "Express"}, Category.FULLSTACK),
        ({"backend_framework": "Hono"}, Category.BACKEND),
        ({"framework": "Next.js"}, Category.FULLSTACK),
        ({"framework": "Vite"}, Category.FRONTEND),
        ({"tags": ["GraphQL"]}, Category.BACKEND),
        ({"language": "Python"}, Category.BACKEND),
        ({"language": "Shell"}, Category.TOOLING),
        ({"language": "TypeScript"}, Category.FRONTEND),
        ({"language": "COBOL"}, Category.UNKNOWN),
        ({}, Category.UNKNOWN),
    ],
)
def test_category_cascade(kwargs: dict, expected: Category) -> None:
    assert infer_category(**kwargs) == expected


def test_humanize_name() -> None:
    assert humanize_name("my-cool_app") == "My Cool App"


def test_description_uses_project_type_and_tech_parts() -> None:
    snapshot = ClassificationSnapshot(primary_framework="Hono", primary_db="Drizzle + Turso")

    assert synthesize_description("billing-api", snapshot) == "API service built with Hono and Drizzle + Turso"


def test_description_joins_three_parts() -> None:
    snapshot = ClassificationSnapshot(primary_framework="Next.js", backend_framework="Express", primary_db="Prisma")

    assert synthesize_description("admin", snapshot) == "Admin panel built with Next.js, Express and Prisma"


def test_description_falls_back_to_humanized_name_with_tech() -> None:
    snapshot = ClassificationSnapshot(primary_framework="Astro")

    assert synthesize_description("my-site", snapshot) == "My Site built with Astro"


def test_description_falls_back_to_language() -> None:
    assert synthesize_description("data_pipeline", ClassificationSnapshot(), "Python") == "Data Pipeline written in Python"


def test_description_falls_back_to_humanized_name() -> None:
    assert synthesize_description("weather-cli", ClassificationSnapshot()) == "Weather Cli"
