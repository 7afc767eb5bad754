"""Graph ordering, validation and node mutation primitives."""

import uuid
from collections import deque
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from pydantic import ValidationError

from ..models.core import (
    AgentConfig,
    EdgeDefinition,
    EndConfig,
    NodeDefinition,
    NodeKind,
    ToolConfig,
    TriggerConfig,
    ValidationResult,
    WorkflowDefinition,
)
from .exceptions import GraphValidationError
from .logging import get_logger

logger = get_logger(__name__)


def topological_order(nodes: Sequence[NodeDefinition], edges: Iterable[EdgeDefinition]) -> List[NodeDefinition]:
    """
    Order nodes for sequential execution using Kahn's algorithm.

    The queue is seeded with in-degree-0 nodes in declaration order so the
    result is deterministic. Edges naming unknown nodes are ignored. Nodes
    that never reach in-degree 0 (cycles, self-loops) are appended in
    declaration order, so the result always contains every node once.

    Args:
        nodes: Nodes in declaration order
        edges: Directed edges between them

    Returns:
        List[NodeDefinition]: Every node exactly once
    """
    by_id = {node.id: node for node in nodes}
    in_degree: Dict[str, int] = {node.id: 0 for node in nodes}
    adjacency: Dict[str, List[str]] = {node.id: [] for node in nodes}

    for edge in edges:
        if edge.source not in by_id or edge.target not in by_id:
            continue
        adjacency[edge.source].append(edge.target)
        in_degree[edge.target] += 1

    queue = deque(node.id for node in nodes if in_degree[node.id] == 0)
    ordered: List[str] = []
    visited = set()

    while queue:
        node_id = queue.popleft()
        if node_id in visited:
            continue
        visited.add(node_id)
        ordered.append(node_id)
        for neighbor in adjacency[node_id]:
            in_degree[neighbor] -= 1
            if in_degree[neighbor] == 0:
                queue.append(neighbor)

    if not ordered and nodes:
        logger.warning("No entry node found (graph is fully cyclic); using declaration order")
        return list(nodes)

    if len(ordered) < len(nodes):
        leftover = [node.id for node in nodes if node.id not in visited]
        logger.warning(f"Cycle detected; appending {len(leftover)} node(s) in declaration order: {', '.join(leftover)}")
        ordered.extend(leftover)

    return [by_id[node_id] for node_id in ordered]


class GraphSnapshot:
    """Immutable per-run copy of a workflow's nodes and edges."""

    def __init__(self, workflow: WorkflowDefinition):
        copied = workflow.model_copy(deep=True)
        self.name = copied.name
        self.nodes: Tuple[NodeDefinition, ...] = tuple(copied.nodes)
        self.edges: Tuple[EdgeDefinition, ...] = tuple(copied.edges)
        self._order: Optional[Tuple[NodeDefinition, ...]] = None

    def ordered_nodes(self) -> List[NodeDefinition]:
        if self._order is None:
            self._order = tuple(topological_order(self.nodes, self.edges))
        return list(self._order)

    def to_workflow(self) -> WorkflowDefinition:
        return WorkflowDefinition(name=self.name, nodes=list(self.nodes), edges=list(self.edges))


def _default_config(kind: NodeKind, label: str):
    if kind == NodeKind.TRIGGER:
        return TriggerConfig()
    if kind == NodeKind.TOOL:
        return ToolConfig(tool_name="echo", input_template="", output_var=_slug(label) or "toolOutput")
    if kind == NodeKind.END:
        return EndConfig()
    return AgentConfig(
        prompt=f"Work on: {label}\n\nContext: {{{{userInput}}}}",
        output_var=_slug(label) or "output",
    )


def _slug(label: str) -> str:
    words = [word for word in "".join(c if c.isalnum() else " " for c in label).split() if word]
    if not words:
        return ""
    return words[0].lower() + "".join(word.capitalize() for word in words[1:])


class GraphManager:
    """Validates workflow graphs and applies node mutations.

    Mutations never touch the input definition; they return a new one.
    """

    def validate_workflow(self, workflow: Union[WorkflowDefinition, Dict[str, Any]]) -> ValidationResult:
        """
        Validate a workflow for structural problems.

        Only problems that make a definition unusable are errors. Cycles,
        self-loops, dangling edges, isolated nodes and shared output
        variables are reported as warnings since the engine tolerates them.

        Args:
            workflow: A workflow definition or its raw dict form

        Returns:
            ValidationResult: Validation results with errors and warnings
        """
        if not isinstance(workflow, WorkflowDefinition):
            try:
                workflow = WorkflowDefinition.model_validate(workflow)
            except ValidationError as e:
                errors = [
                    f"{'.'.join(str(part) for part in error['loc']) or 'workflow'}: {error['msg']}"
                    for error in e.errors()
                ]
                return ValidationResult(is_valid=False, errors=errors)

        logger.debug(f"Validating workflow: {workflow.name}")
        errors: List[str] = []
        warnings: List[str] = []

        if not workflow.nodes:
            errors.append("Workflow has no nodes")

        self._validate_references(workflow, warnings)
        self._validate_cycles(workflow, warnings)
        self._validate_output_vars(workflow, warnings)
        self._validate_node_kinds(workflow, warnings)

        result = ValidationResult(is_valid=not errors, errors=errors, warnings=warnings)
        logger.debug(f"Workflow validation completed. Valid: {result.is_valid}, "
                     f"Errors: {len(result.errors)}, Warnings: {len(result.warnings)}")
        return result

    def create_node(
        self,
        workflow: WorkflowDefinition,
        parent_id: str,
        label: str,
        kind: NodeKind = NodeKind.AGENT,
        config: Optional[Dict[str, Any]] = None
    ) -> Tuple[WorkflowDefinition, NodeDefinition]:
        """
        Append a child node linked from ``parent_id``.

        Returns:
            Tuple of (new workflow, created node)

        Raises:
            GraphValidationError: If the parent node does not exist
        """
        if workflow.find_node(parent_id) is None:
            raise GraphValidationError(
                f"Parent node '{parent_id}' not found",
                workflow_name=workflow.name,
            ).add_context(parent_id=parent_id)

        node_id = f"node-{uuid.uuid4().hex[:8]}"
        node_config = _default_config(kind, label)
        if config:
            node_config = type(node_config).model_validate({**node_config.model_dump(), **config})
        node = NodeDefinition(id=node_id, kind=kind, label=label, config=node_config)

        updated = workflow.model_copy(deep=True)
        updated.nodes.append(node)
        updated.edges.append(EdgeDefinition(id=f"e-{parent_id}-{node_id}", source=parent_id, target=node_id))

        logger.info(f"Created node '{label}' ({node_id}) under {parent_id}")
        return updated, node

    def update_node(self, workflow: WorkflowDefinition, node: NodeDefinition) -> WorkflowDefinition:
        """
        Replace the node with the same id.

        Raises:
            GraphValidationError: If no node has that id
        """
        if workflow.find_node(node.id) is None:
            raise GraphValidationError(
                f"Node '{node.id}' not found",
                workflow_name=workflow.name,
            ).add_context(node_id=node.id)

        updated = workflow.model_copy(deep=True)
        updated.nodes = [node if existing.id == node.id else existing for existing in updated.nodes]
        logger.info(f"Updated node {node.id}")
        return updated

    def _validate_references(self, workflow: WorkflowDefinition, warnings: List[str]):
        node_ids = {node.id for node in workflow.nodes}
        connected = set()
        for edge in workflow.edges:
            if edge.source not in node_ids:
                warnings.append(f"Edge '{edge.id}' references non-existent source node: '{edge.source}'")
            if edge.target not in node_ids:
                warnings.append(f"Edge '{edge.id}' references non-existent target node: '{edge.target}'")
            if edge.source == edge.target:
                warnings.append(f"Edge '{edge.id}' is a self-loop on '{edge.source}'")
            connected.update((edge.source, edge.target))

        if len(workflow.nodes) > 1:
            isolated = [node.id for node in workflow.nodes if node.id not in connected]
            if isolated:
                warnings.append(f"Isolated nodes run in declaration order: {', '.join(isolated)}")

    def _validate_cycles(self, workflow: WorkflowDefinition, warnings: List[str]):
        node_ids = {node.id for node in workflow.nodes}
        adjacency: Dict[str, List[str]] = {node_id: [] for node_id in node_ids}
        for edge in workflow.edges:
            if edge.source in node_ids and edge.target in node_ids and edge.source != edge.target:
                adjacency[edge.source].append(edge.target)

        if self._has_cycles(adjacency):
            warnings.append(
                "Workflow contains cycles. Nodes on the cycle run once, in declaration order."
            )

    @staticmethod
    def _has_cycles(adjacency: Dict[str, List[str]]) -> bool:
        white, grey, black = 0, 1, 2
        color = {node_id: white for node_id in adjacency}

        for start in adjacency:
            if color[start] != white:
                continue
            stack = [(start, iter(adjacency[start]))]
            color[start] = grey
            while stack:
                node_id, neighbors = stack[-1]
                advanced = False
                for neighbor in neighbors:
                    if color[neighbor] == grey:
                        return True
                    if color[neighbor] == white:
                        color[neighbor] = grey
                        stack.append((neighbor, iter(adjacency[neighbor])))
                        advanced = True
                        break
                if not advanced:
                    color[node_id] = black
                    stack.pop()
        return False

    def _validate_output_vars(self, workflow: WorkflowDefinition, warnings: List[str]):
        owners: Dict[str, List[str]] = {}
        for node in workflow.nodes:
            owners.setdefault(node.output_var, []).append(node.id)
        for name, node_ids in owners.items():
            if len(node_ids) > 1:
                warnings.append(
                    f"Output variable '{name}' is written by {', '.join(node_ids)}; the last writer wins"
                )

    def _validate_node_kinds(self, workflow: WorkflowDefinition, warnings: List[str]):
        kinds = [node.kind for node in workflow.nodes]
        if workflow.nodes and NodeKind.TRIGGER not in kinds:
            warnings.append("Workflow has no trigger node")
        if workflow.nodes and NodeKind.END not in kinds:
            warnings.append("Workflow has no end node")
