"""Project model: one catalog entry per distinct project"""

from datetime import UTC, datetime
import enum
import uuid

from sqlalchemy import Boolean, Column, DateTime, Index, String, Text

from catalog.config.database import Base


class ProjectStatus(str, enum.Enum):
    """Lifecycle status"""
    ACTIVE = "active"
    REDUNDANT = "redundant"


class ProjectStage(str, enum.Enum):
    """Maturity stage"""
    FINAL = "final"
    BETA = "beta"
    ALPHA = "alpha"
    INDEV = "indev"


class Provenance(str, enum.Enum):
    """Where the entry was first seen"""
    SCANNER = "scanner"
    HOSTED = "hosted"


def new_id() -> str:
    return uuid.uuid4().hex


def utcnow() -> datetime:
    return datetime.now(UTC)


class Project(Base):
    """
    Catalog entry keyed by ``path``

    ``path`` is the identity key: a local filesystem path for scanned
    projects, ``github:owner/repo`` or ``vercel:<name>`` for hosted ones.
    """
    __tablename__ = "projects"

    id = Column(String(32), primary_key=True, default=new_id)
    path = Column(String(1000), nullable=False)
    name = Column(String(255), nullable=False)
    display_name = Column(String(255), nullable=True)  # User override, never written by syncs

    status = Column(String(20), nullable=False, default=ProjectStatus.ACTIVE.value)
    stage = Column(String(20), nullable=True, default=ProjectStage.INDEV.value)
    source = Column(String(20), nullable=False, default=Provenance.SCANNER.value)
    origin = Column(String(20), nullable=True)  # Sync that inserted the row: scanner, github, vercel

    repo_slug = Column(String(255), nullable=True)  # e.g., "owner/repo"
    vercel_project = Column(String(255), nullable=True)
    vercel_url = Column(String(1000), nullable=True)
    html_url = Column(String(1000), nullable=True)

    description = Column(Text, nullable=True)
    description_generated = Column(Boolean, nullable=False, default=False)
    category = Column(String(20), nullable=True)
    language = Column(String(100), nullable=True)
    package_manager = Column(String(20), nullable=True)

    last_commit_at = Column(DateTime(timezone=True), nullable=True)
    last_deployment_at = Column(DateTime(timezone=True), nullable=True)
    is_pinned = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("projects_path_idx", "path", unique=True),
        Index("projects_status_idx", "status"),
        Index("projects_source_idx", "source"),
        Index("projects_repo_slug_idx", "repo_slug"),
    )

    @property
    def label(self) -> str:
        return self.display_name or self.name

    def __repr__(self):
        return f"<Project {self.path} ({self.status})>"
