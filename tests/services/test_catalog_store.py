from datetime import UTC, datetime

from catalog.models import ProjectStatus, Provenance
from catalog.services.classifier import ClassificationSnapshot
from catalog.services.store import ActivityEvent


def _event(project_id: str, title: str = "Deployment READY") -> ActivityEvent:
    return ActivityEvent(
        id=f"{project_id}-deployment-dpl_1",
        project_id=project_id,
        type="deployment",
        timestamp=datetime(2026, 5, 1, 12, tzinfo=UTC),
        title=title,
        metadata={"status": "success"},
    )


def test_upsert_is_idempotent_per_identity_key(store) -> None:
    first = store.upsert("github:me/web", {"name": "web", "repo_slug": "me/web"}, provenance=Provenance.HOSTED.value)
    second = store.upsert("github:me/web", {"name": "web", "repo_slug": "me/web"}, provenance=Provenance.HOSTED.value)

    assert first.id == second.id
    assert len(store.list_projects()) == 1


def test_upsert_preserves_user_fields_and_provenance(store) -> None:
    project = store.upsert("/work/web", {"name": "web"}, provenance=Provenance.SCANNER.value)
    store.update_project(project.id, {"is_pinned": True, "display_name": "Website", "stage": "beta"})

    updated = store.upsert(
        "/work/web",
        {"name": "web-app", "is_pinned": False, "display_name": None},
        provenance=Provenance.HOSTED.value,
    )

    assert updated.name == "web-app"
    assert updated.is_pinned is True
    assert updated.display_name == "Website"
    assert updated.stage == "beta"
    assert updated.source == Provenance.SCANNER.value


def test_upsert_defaults(store) -> None:
    project = store.upsert("github:me/new", {"name": "new"}, provenance=Provenance.HOSTED.value)

    assert project.status == ProjectStatus.ACTIVE.value
    assert project.is_pinned is False
    assert project.description_generated is False


def test_replace_snapshot_keeps_one_row_per_project(store) -> None:
    project = store.upsert("/work/web", {"name": "web"}, provenance=Provenance.SCANNER.value)

    store.replace_snapshot(project.id, ClassificationSnapshot(primary_framework="React", tags=["Redux"]))
    store.replace_snapshot(project.id, ClassificationSnapshot(primary_framework="Next.js", tags=["Tailwind"]))

    snapshot = store.get_snapshot(project.id)
    assert snapshot.primary_framework == "Next.js"
    assert snapshot.tags == ["Tailwind"]


def test_append_event_if_absent_keeps_first_write(store) -> None:
    project = store.upsert("/work/web", {"name": "web"}, provenance=Provenance.SCANNER.value)

    assert store.append_event_if_absent(_event(project.id, "Deployment BUILDING")) is True
    assert store.append_event_if_absent(_event(project.id, "Deployment READY")) is False

    events = store.list_events(project_id=project.id)
    assert [event.title for event in events] == ["Deployment BUILDING"]


def test_upsert_event_refreshes_stored_copy(store) -> None:
    project = store.upsert("/work/web", {"name": "web"}, provenance=Provenance.SCANNER.value)

    store.upsert_event(_event(project.id, "Deployment BUILDING"))
    store.upsert_event(_event(project.id, "Deployment READY"))

    events = store.list_events(project_id=project.id)
    assert len(events) == 1
    assert events[0].title == "Deployment READY"
    assert events[0].event_metadata == {"status": "success"}


def test_find_candidates_matches_slug_or_name(store) -> None:
    store.upsert("/work/a", {"name": "shop", "repo_slug": "me/shop"}, provenance=Provenance.SCANNER.value)
    store.upsert("/work/b", {"name": "shop"}, provenance=Provenance.SCANNER.value)
    store.upsert("/work/c", {"name": "other"}, provenance=Provenance.SCANNER.value)

    candidates = store.find_candidates(name="shop", repo_slug="me/shop")

    assert {project.path for project in candidates} == {"/work/a", "/work/b"}


def test_mark_redundant_flips_status(store) -> None:
    project = store.upsert("github:me/old", {"name": "old"}, provenance=Provenance.HOSTED.value)

    assert store.mark_redundant([project.id]) == 1
    assert store.get("github:me/old").status == ProjectStatus.REDUNDANT.value


def test_upsert_record_reports_insert_and_keeps_insert_only_columns(store) -> None:
    project, created = store.upsert_record(
        "vercel:docs",
        {"vercel_project": "prj_1"},
        provenance=Provenance.HOSTED.value,
        origin="vercel",
        insert_fields={"name": "docs", "description": "Docs", "description_generated": True},
    )
    again, created_again = store.upsert_record(
        "vercel:docs",
        {"vercel_project": "prj_2"},
        provenance=Provenance.SCANNER.value,
        origin="github",
        insert_fields={"name": "renamed", "description": "Other"},
    )

    assert created is True
    assert created_again is False
    assert again.id == project.id
    assert again.name == "docs"
    assert again.description == "Docs"
    assert again.vercel_project == "prj_2"
    assert again.origin == "vercel"
    assert again.source == Provenance.HOSTED.value
