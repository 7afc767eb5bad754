"""Persistence port for saved projects and its adapters."""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from ..core.exceptions import StorageError
from ..core.logging import get_logger
from ..models.core import Project
from .models import ProjectModel

logger = get_logger(__name__)


class ProjectStore(ABC):
    """Load/save port for the project list, most recent first.

    Adapters implement ``load`` and ``save``; the remaining operations are
    built on them.
    """

    @abstractmethod
    def load(self) -> List[Project]:
        ...

    @abstractmethod
    def save(self, projects: List[Project]) -> None:
        ...

    def get(self, project_id: str) -> Optional[Project]:
        for project in self.load():
            if project.id == project_id:
                return project
        return None

    def upsert(self, project: Project) -> Project:
        """Replace a project in place, or prepend it if it is new."""
        project = project.model_copy(update={"updated_at": datetime.utcnow()})
        projects = self.load()
        for index, existing in enumerate(projects):
            if existing.id == project.id:
                projects[index] = project
                break
        else:
            projects.insert(0, project)
        self.save(projects)
        logger.info(f"Saved project {project.id} ('{project.name}')")
        return project

    def delete(self, project_id: str) -> bool:
        projects = self.load()
        remaining = [project for project in projects if project.id != project_id]
        if len(remaining) == len(projects):
            return False
        self.save(remaining)
        logger.info(f"Deleted project {project_id}")
        return True


class InMemoryProjectStore(ProjectStore):
    """Project store kept in process memory."""

    def __init__(self, projects: Optional[List[Project]] = None):
        self._projects: List[Project] = [project.model_copy(deep=True) for project in projects or []]

    def load(self) -> List[Project]:
        return [project.model_copy(deep=True) for project in self._projects]

    def save(self, projects: List[Project]) -> None:
        self._projects = [project.model_copy(deep=True) for project in projects]


class SqlProjectStore(ProjectStore):
    """Project store backed by a SQLAlchemy ``projects`` table."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def load(self) -> List[Project]:
        session = self._session_factory()
        try:
            rows = session.query(ProjectModel).order_by(ProjectModel.position).all()
            return [Project.model_validate(row.payload) for row in rows]
        except SQLAlchemyError as e:
            logger.error(f"Database error while loading projects: {e}")
            raise StorageError(f"Failed to load projects: {e}", operation="load")
        finally:
            session.close()

    def save(self, projects: List[Project]) -> None:
        session = self._session_factory()
        try:
            session.query(ProjectModel).delete()
            for position, project in enumerate(projects):
                session.add(ProjectModel(
                    id=project.id,
                    name=project.name,
                    position=position,
                    payload=project.model_dump(mode="json"),
                    updated_at=project.updated_at,
                ))
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"Database error while saving projects: {e}")
            raise StorageError(f"Failed to save projects: {e}", operation="save")
        finally:
            session.close()
