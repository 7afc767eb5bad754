"""Database models and storage layer."""

from .database import Base, get_database_engine, get_session_factory, create_tables, drop_tables
from .models import ProjectModel
from .project_store import ProjectStore, InMemoryProjectStore, SqlProjectStore

__all__ = [
    "Base",
    "get_database_engine",
    "get_session_factory",
    "create_tables",
    "drop_tables",
    "ProjectModel",
    "ProjectStore",
    "InMemoryProjectStore",
    "SqlProjectStore",
]
