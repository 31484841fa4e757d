"""Database models"""

from catalog.models.activity_item import ActivityItem, ActivityType
from catalog.models.project import Project, ProjectStage, ProjectStatus, Provenance
from catalog.models.tech_stack_snapshot import TechStackSnapshot

__all__ = [
    "ActivityItem",
    "ActivityType",
    "Project",
    "ProjectStage",
    "ProjectStatus",
    "Provenance",
    "TechStackSnapshot",
]
