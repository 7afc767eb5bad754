"""Tools module for the workflow engine."""

from .builtin_tools import (
    BUILTIN_TOOLS,
    echo,
    extract_fenced,
    extract_mermaid,
    parse_json,
    reconcile_roadmap,
    register_builtin_tools,
)

__all__ = [
    "BUILTIN_TOOLS",
    "echo",
    "extract_fenced",
    "extract_mermaid",
    "parse_json",
    "reconcile_roadmap",
    "register_builtin_tools",
]
