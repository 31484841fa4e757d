"""Tech stack snapshot model, replaced wholesale on every classification pass."""

from sqlalchemy import JSON, Column, DateTime, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import relationship

from catalog.config.database import Base
from catalog.models.project import new_id


class TechStackSnapshot(Base):
    """Classification snapshot mapped to `tech_stack_snapshots` table."""

    __tablename__ = "tech_stack_snapshots"

    id = Column(String(32), primary_key=True, default=new_id)
    project_id = Column(String(32), ForeignKey("projects.id"), nullable=False)

    primary_framework = Column(String(100), nullable=True)
    backend_framework = Column(String(100), nullable=True)
    primary_db = Column(String(100), nullable=True)
    primary_auth = Column(String(100), nullable=True)
    tags = Column(JSON, nullable=False, default=list)

    last_scanned_at = Column(DateTime(timezone=True), nullable=False)

    project = relationship("Project", backref="tech_stack")

    __table_args__ = (
        UniqueConstraint("project_id", name="uk_tech_stack_project"),
    )

    def __repr__(self):
        return f"<TechStackSnapshot {self.project_id}: {self.primary_framework}>"
