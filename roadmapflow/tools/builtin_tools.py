"""Built-in tools available to TOOL nodes."""

from typing import Any, Dict, Optional

from ..core.logging import get_logger
from ..core.roadmap_reconciler import reconcile
from ..core.structured_extractor import extract_fenced_code, extract_json

logger = get_logger(__name__)


def echo(text: str, context: Optional[Dict[str, Any]] = None, **kwargs) -> str:
    """Return the rendered input unchanged."""
    return text


def extract_mermaid(text: str, context: Optional[Dict[str, Any]] = None, **kwargs) -> Dict[str, Any]:
    """
    Pull the Mermaid diagram out of a model reply.

    Falls back to the whole reply when it starts like a bare diagram
    (``gantt``, ``graph``, ``flowchart`` ...) without a fence.

    Returns:
        Cell with ``text`` set to the diagram source (empty if none) and
        ``found`` telling whether a diagram was recovered
    """
    code = extract_fenced_code(text, "mermaid")
    if code is None:
        stripped = (text or "").strip()
        first_word = stripped.split(None, 1)[0].lower() if stripped else ""
        if first_word in ("gantt", "graph", "flowchart", "timeline", "sequencediagram"):
            code = stripped

    if code is None:
        logger.warning("No Mermaid block found in tool input")
        return {"text": "", "found": False}
    return {"text": code, "found": True}


def extract_fenced(text: str, context: Optional[Dict[str, Any]] = None, language: str = "json", **kwargs) -> str:
    """Return the body of the first fenced block in ``language``, or an empty string."""
    return extract_fenced_code(text, language) or ""


def parse_json(text: str, context: Optional[Dict[str, Any]] = None, **kwargs) -> Dict[str, Any]:
    """Parse the JSON object embedded in the input; ``parsed`` is false when none is found."""
    parsed = extract_json(text)
    if parsed is None:
        return {"text": text, "parsed": False}
    return {**parsed, "text": text, "parsed": True}


def reconcile_roadmap(
    text: str,
    context: Optional[Dict[str, Any]] = None,
    extraction_var: str = "extractedData",
    planning_var: str = "roadmapPlan",
    **kwargs
) -> Dict[str, Any]:
    """Reconcile two context slots into roadmap data inside the workflow."""
    context = context or {}
    roadmap = reconcile(context.get(extraction_var), context.get(planning_var))
    if roadmap is None:
        return {"text": "", "reconciled": False}
    payload = roadmap.model_dump(mode="json")
    return {**payload, "text": roadmap.summary, "reconciled": True}


BUILTIN_TOOLS = [
    ("echo", echo, "Return the rendered input unchanged"),
    ("extract_mermaid", extract_mermaid, "Extract a Mermaid diagram from model output"),
    ("extract_fenced", extract_fenced, "Extract a fenced code block by language"),
    ("parse_json", parse_json, "Parse an embedded JSON object"),
    ("reconcile_roadmap", reconcile_roadmap, "Build roadmap data from extraction and planning outputs"),
]


def register_builtin_tools(tool_registry) -> None:
    """Register every built-in tool that is not already registered."""
    for name, function, description in BUILTIN_TOOLS:
        if not tool_registry.tool_exists(name):
            tool_registry.register_tool(name, function, description)
