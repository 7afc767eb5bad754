"""Tests for the tool registry and the built-in tools."""

import pytest

from roadmapflow.core.exceptions import ToolRegistryError
from roadmapflow.core.tool_registry import ToolRegistry
from roadmapflow.tools.builtin_tools import (
    BUILTIN_TOOLS,
    extract_mermaid,
    parse_json,
    reconcile_roadmap,
    register_builtin_tools,
)

from .helpers import EXTRACTION, PLANNING


def shout(text, context=None, suffix="!"):
    return text.upper() + suffix


async def async_shout(text, context=None):
    return {"text": text.upper(), "source": "async"}


def broken(text, context=None):
    raise ValueError("bad input")


class TestToolRegistry:
    """Test cases for ToolRegistry component."""

    def test_register_and_get_tool(self):
        registry = ToolRegistry()
        registry.register_tool("shout", shout, "Upper-case the input")

        assert registry.tool_exists("shout")
        assert registry.get_tool("shout") is shout
        assert registry.list_tools() == [{"name": "shout", "description": "Upper-case the input"}]

    def test_duplicate_and_invalid_registrations(self):
        registry = ToolRegistry()
        registry.register_tool("shout", shout)

        with pytest.raises(ToolRegistryError):
            registry.register_tool("shout", shout)
        with pytest.raises(ToolRegistryError):
            registry.register_tool("", shout)
        with pytest.raises(ToolRegistryError):
            registry.register_tool("no_args", lambda: None)
        with pytest.raises(ToolRegistryError):
            registry.register_tool("not_callable", "shout")

    def test_unregister(self):
        registry = ToolRegistry()
        registry.register_tool("shout", shout)

        assert registry.unregister_tool("shout") is True
        assert registry.unregister_tool("shout") is False
        with pytest.raises(ToolRegistryError):
            registry.get_tool("shout")

    @pytest.mark.asyncio
    async def test_call_sync_and_async_tools(self):
        registry = ToolRegistry()
        registry.register_tool("shout", shout)
        registry.register_tool("async_shout", async_shout)

        assert await registry.call_tool("shout", "hi", suffix="?") == "HI?"
        assert await registry.call_tool("async_shout", "hi") == {"text": "HI", "source": "async"}

    @pytest.mark.asyncio
    async def test_tool_failures_are_wrapped(self):
        registry = ToolRegistry()
        registry.register_tool("broken", broken)

        with pytest.raises(ToolRegistryError) as exc_info:
            await registry.call_tool("broken", "x")
        assert "bad input" in exc_info.value.message
        assert exc_info.value.details["error_type"] == "ValueError"

    def test_register_builtin_tools_is_idempotent(self):
        registry = ToolRegistry()
        register_builtin_tools(registry)
        register_builtin_tools(registry)

        assert len(registry.list_tools()) == len(BUILTIN_TOOLS)


class TestBuiltinTools:
    """Test cases for the built-in tools."""

    def test_extract_mermaid_from_fence(self):
        reply = "Here:\n```mermaid\ngantt\n  title Plan\n```\nDone."
        assert extract_mermaid(reply) == {"text": "gantt\n  title Plan", "found": True}

    def test_extract_mermaid_bare_diagram(self):
        assert extract_mermaid("gantt\n  title Plan") == {"text": "gantt\n  title Plan", "found": True}

    def test_extract_mermaid_missing(self):
        assert extract_mermaid("no chart today") == {"text": "", "found": False}

    def test_parse_json(self):
        assert parse_json('x {"a": 1} y') == {"a": 1, "text": 'x {"a": 1} y', "parsed": True}
        assert parse_json("plain") == {"text": "plain", "parsed": False}

    def test_reconcile_roadmap_reads_context(self):
        context = {"extractedData": {**EXTRACTION, "text": "raw"}, "roadmapPlan": {**PLANNING, "text": "raw"}}
        output = reconcile_roadmap("", context=context)

        assert output["reconciled"] is True
        assert output["text"] == "Ship the core loop first"
        assert [feature["name"] for feature in output["features"]] == ["User Auth", "Task Board", "Reports"]

    def test_reconcile_roadmap_without_inputs(self):
        assert reconcile_roadmap("", context={}) == {"text": "", "reconciled": False}
