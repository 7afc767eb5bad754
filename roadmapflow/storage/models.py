"""SQLAlchemy database models for saved projects."""

from datetime import datetime
from sqlalchemy import Column, String, DateTime, JSON, Integer

from .database import Base


class ProjectModel(Base):
    """Database model for a saved roadmap project."""
    __tablename__ = "projects"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    position = Column(Integer, nullable=False, default=0)  # 0 is the most recent
    payload = Column(JSON, nullable=False)  # nodes, edges, logs and roadmap
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
