"""Pytest configuration and fixtures."""

import pytest

from roadmapflow.core.generation_client import GenerationClient
from roadmapflow.core.execution_engine import WorkflowExecutor
from roadmapflow.core.tool_registry import ToolRegistry
from roadmapflow.tools.builtin_tools import register_builtin_tools

from .helpers import FakeProvider


@pytest.fixture
def fake_provider():
    """Provider answering every call with 'ok' unless scripted."""
    return FakeProvider()


@pytest.fixture
def generation_client(fake_provider):
    """Generation client with millisecond backoff."""
    return GenerationClient(fake_provider, retry_base_delay=0.001, retry_max_delay=0.005)


@pytest.fixture
def tool_registry():
    """Tool registry with the built-in tools."""
    registry = ToolRegistry()
    register_builtin_tools(registry)
    return registry


@pytest.fixture
def executor(generation_client, tool_registry):
    """Workflow executor without pacing."""
    return WorkflowExecutor(generation_client, tool_registry=tool_registry)
