"""Activity item model: one row per observed commit or deployment."""

import enum

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Index, String, Text
from sqlalchemy.orm import relationship

from catalog.config.database import Base


class ActivityType(str, enum.Enum):
    """Activity event type"""
    COMMIT = "commit"
    DEPLOYMENT = "deployment"


class ActivityItem(Base):
    """Append-only activity event mapped to `activity_items` table.

    The id is derived from (project id, type, native id) so re-ingesting the
    same external event always lands on the same row.
    """

    __tablename__ = "activity_items"

    id = Column(String(128), primary_key=True)
    project_id = Column(String(32), ForeignKey("projects.id"), nullable=False)
    type = Column(String(20), nullable=False)
    timestamp = Column(DateTime(timezone=True), nullable=False)
    title = Column(Text, nullable=False)
    url = Column(String(1000), nullable=True)
    event_metadata = Column("metadata", JSON, nullable=True)  # author, sha/uid, state, status

    project = relationship("Project", backref="activity_items")

    __table_args__ = (
        Index("activity_project_idx", "project_id"),
        Index("activity_type_idx", "type"),
    )

    def __repr__(self):
        return f"<ActivityItem {self.id} {self.type}@{self.timestamp}>"
