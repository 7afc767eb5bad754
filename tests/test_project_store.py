"""Tests for the project store adapters."""

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from roadmapflow.core.exceptions import StorageError
from roadmapflow.models.core import Project
from roadmapflow.models.templates import build_roadmap_workflow
from roadmapflow.storage.database import Base, drop_tables, get_session_factory
from roadmapflow.storage.project_store import InMemoryProjectStore, SqlProjectStore


@pytest.fixture
def sql_store():
    """SQL store on a private in-memory SQLite database."""
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    Base.metadata.create_all(bind=engine)
    yield SqlProjectStore(get_session_factory(engine))
    drop_tables(engine)
    engine.dispose()


@pytest.fixture(params=["memory", "sql"])
def store(request, sql_store):
    """Each adapter in turn."""
    if request.param == "memory":
        return InMemoryProjectStore()
    return sql_store


def make_project(project_id: str, name: str = "Roadmap") -> Project:
    workflow = build_roadmap_workflow()
    return Project(id=project_id, name=name, nodes=workflow.nodes, edges=workflow.edges)


class TestProjectStore:
    """Test cases shared by every adapter."""

    def test_new_projects_are_prepended(self, store):
        store.upsert(make_project("p1"))
        store.upsert(make_project("p2"))

        assert [project.id for project in store.load()] == ["p2", "p1"]

    def test_upsert_replaces_in_place(self, store):
        store.upsert(make_project("p1"))
        store.upsert(make_project("p2"))
        store.upsert(make_project("p1", name="Renamed"))

        projects = store.load()
        assert [project.id for project in projects] == ["p2", "p1"]
        assert projects[1].name == "Renamed"

    def test_payload_survives_round_trip(self, store):
        """Test that nodes, configs and edges come back intact."""
        original = make_project("p1")
        store.upsert(original)
        loaded = store.get("p1")

        assert loaded.nodes == original.nodes
        assert loaded.edges == original.edges
        assert loaded.to_workflow().find_node("tool-mermaid").config.tool_name == "extract_mermaid"

    def test_upsert_stamps_updated_at(self, store):
        project = make_project("p1")
        saved = store.upsert(project)
        assert saved.updated_at >= project.updated_at

    def test_delete(self, store):
        store.upsert(make_project("p1"))

        assert store.delete("p1") is True
        assert store.delete("p1") is False
        assert store.get("p1") is None
        assert store.load() == []


class TestInMemoryProjectStore:
    """Test cases specific to the in-memory adapter."""

    def test_loaded_projects_are_copies(self):
        store = InMemoryProjectStore([make_project("p1")])
        store.load()[0].name = "Changed"
        assert store.get("p1").name == "Roadmap"


class TestSqlProjectStore:
    """Test cases specific to the SQL adapter."""

    def test_database_errors_become_storage_errors(self):
        engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
        store = SqlProjectStore(get_session_factory(engine))

        with pytest.raises(StorageError):
            store.load()
