"""User-owned project settings. Syncs never write these columns."""

from __future__ import annotations

import logging
from typing import Optional

from catalog.errors import InvalidProjectUpdate, ProjectNotFound
from catalog.models import Project, ProjectStage, ProjectStatus
from catalog.services.store import CatalogStore

logger = logging.getLogger(__name__)

DISPLAY_NAME_MAX_LENGTH = 200


def _require(store: CatalogStore, project_id: str) -> Project:
    project = store.get_by_id(project_id)
    if project is None:
        raise ProjectNotFound(project_id)
    return project


def _update(store: CatalogStore, project_id: str, **fields) -> Project:
    project = store.update_project(project_id, fields)
    if project is None:
        raise ProjectNotFound(project_id)
    logger.info("Project settings updated", extra={"project_id": project_id, "fields": sorted(fields)})
    return project


def toggle_pin(store: CatalogStore, project_id: str) -> Project:
    project = _require(store, project_id)
    return _update(store, project_id, is_pinned=not project.is_pinned)


def set_stage(store: CatalogStore, project_id: str, stage: Optional[str]) -> Project:
    """Set the maturity stage; None resets it to the default."""
    if stage is None:
        value = ProjectStage.INDEV.value
    else:
        try:
            value = ProjectStage(str(stage).strip().lower()).value
        except ValueError:
            allowed = ", ".join(item.value for item in ProjectStage)
            raise InvalidProjectUpdate(f"Invalid stage {stage!r}; expected one of: {allowed}") from None
    return _update(store, project_id, stage=value)


def set_display_name(store: CatalogStore, project_id: str, display_name: Optional[str]) -> Project:
    value = (display_name or "").strip() or None
    if value is not None and len(value) > DISPLAY_NAME_MAX_LENGTH:
        raise InvalidProjectUpdate(f"Display name longer than {DISPLAY_NAME_MAX_LENGTH} characters")
    return _update(store, project_id, display_name=value)


def set_status(store: CatalogStore, project_id: str, status: str) -> Project:
    try:
        value = ProjectStatus(str(status).strip().lower()).value
    except ValueError:
        allowed = ", ".join(item.value for item in ProjectStatus)
        raise InvalidProjectUpdate(f"Invalid status {status!r}; expected one of: {allowed}") from None
    return _update(store, project_id, status=value)
