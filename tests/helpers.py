"""Shared test doubles and workflow builders."""

import asyncio
import json
from typing import Any, Callable, List, Optional

from roadmapflow.core.generation_client import GenerationProvider
from roadmapflow.models.core import (
    AgentConfig,
    EdgeDefinition,
    EndConfig,
    GenerationRequest,
    GenerationResult,
    NodeDefinition,
    NodeKind,
    ToolConfig,
    TriggerConfig,
    WorkflowDefinition,
)


class FakeProvider(GenerationProvider):
    """Scripted generation backend.

    Each call consumes the next scripted item: a string is returned as the
    generated text, an exception is raised, a GenerationResult is returned
    as is. Once the script is exhausted ``handler`` (if any) answers.
    """

    def __init__(
        self,
        responses: Optional[List[Any]] = None,
        handler: Optional[Callable[[GenerationRequest], Any]] = None,
        delay: float = 0.0
    ):
        self.responses = list(responses or [])
        self.handler = handler
        self.delay = delay
        self.requests: List[GenerationRequest] = []
        self.closed = False

    @property
    def call_count(self) -> int:
        return len(self.requests)

    async def generate_content(self, request: GenerationRequest) -> GenerationResult:
        self.requests.append(request)
        if self.delay:
            await asyncio.sleep(self.delay)

        if self.responses:
            item = self.responses.pop(0)
        elif self.handler is not None:
            item = self.handler(request)
        else:
            item = "ok"

        if isinstance(item, Exception):
            raise item
        if isinstance(item, GenerationResult):
            return item
        return GenerationResult(text=item)

    async def aclose(self):
        self.closed = True


def prompt_text(request: GenerationRequest) -> str:
    return "".join(part.text for part in request.content_parts if part.text is not None)


EXTRACTION = {
    "product_name": "TaskPilot",
    "vision": "Planning for small teams",
    "features": [
        {"id": "feature_1", "name": "User Auth", "description": "Sign in", "estimated_effort": 3},
        {"id": "feature_2", "name": "Task Board", "estimated_effort": 5},
        {"id": "feature_3", "name": "Reports", "estimated_effort": 8},
    ],
    "must_have": ["User Auth"],
    "should_have": ["Task Board"],
    "could_have": ["Reports"],
    "feature_dependencies": [{"feature": "Task Board", "depends_on": ["User Auth"]}],
}

PLANNING = {
    "strategy": "Ship the core loop first",
    "workstreams": [
        {"name": "Core Platform", "purpose": "Foundations", "features": ["User Auth", "Task Board"]},
        {"name": "Insights", "purpose": "Analytics", "features": ["Reports"]},
    ],
    "q1_features": ["User Auth"],
    "q2_features": ["User Auth", "Task Board"],
    "q3_features": ["Reports"],
    "quarterly_breakdown": {
        "Q1": {"milestone_gate": "Auth Go/No-Go", "narrative": "Build auth."},
        "Q3": {"milestone_gate": "Insights Beta", "narrative": "Reports land."},
    },
    "feature_metadata": [
        {"name": "Reports", "risk_level": "high", "confidence_score": 140, "is_critical_path": True},
    ],
    "ai_insights": [{"type": "risk", "title": "Thin team", "description": "Two devs", "severity": "medium"}],
}


def roadmap_handler(request: GenerationRequest) -> str:
    """Answer the default roadmap workflow's agents by prompt content."""
    text = prompt_text(request)
    if "Analyze this product requirement" in text:
        return "```json\n" + json.dumps(EXTRACTION) + "\n```"
    if "Create a quarterly roadmap" in text:
        return json.dumps(PLANNING)
    if "Mermaid.js Gantt chart" in text:
        return "Here you go:\n```mermaid\ngantt\n  title Product Roadmap Timeline\n```"
    return "# TaskPilot - 12 Month Product Roadmap"


def trigger_node(node_id: str = "trigger", text: str = "Build a task app", **config) -> NodeDefinition:
    return NodeDefinition(
        id=node_id, kind=NodeKind.TRIGGER, label="Input",
        config=TriggerConfig(static_input=text, **config),
    )


def agent_node(node_id: str, prompt: str, output_var: str, **config) -> NodeDefinition:
    return NodeDefinition(
        id=node_id, kind=NodeKind.AGENT, label=node_id,
        config=AgentConfig(prompt=prompt, output_var=output_var, **config),
    )


def tool_node(node_id: str, tool_name: str, input_template: str, output_var: str, **config) -> NodeDefinition:
    return NodeDefinition(
        id=node_id, kind=NodeKind.TOOL, label=node_id,
        config=ToolConfig(tool_name=tool_name, input_template=input_template, output_var=output_var, **config),
    )


def end_node(node_id: str = "end", **config) -> NodeDefinition:
    return NodeDefinition(id=node_id, kind=NodeKind.END, label="End", config=EndConfig(**config))


def chain(*nodes: NodeDefinition, name: str = "Test Workflow") -> WorkflowDefinition:
    """Workflow linking ``nodes`` in the given order."""
    edges = [
        EdgeDefinition(source=source.id, target=target.id)
        for source, target in zip(nodes, nodes[1:])
    ]
    return WorkflowDefinition(name=name, nodes=list(nodes), edges=edges)


