"""Workflow executor: runs a workflow's nodes in order over a shared context."""

import asyncio
import inspect
import uuid
from datetime import datetime
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

from ..models.core import (
    DEFAULT_MODEL,
    AgentConfig,
    EndConfig,
    ExecutionLogEntry,
    GenerationRequest,
    InputType,
    MediaPart,
    NodeDefinition,
    NodeKind,
    NodeStatus,
    RunResult,
    RunStatus,
    ToolConfig,
    TriggerConfig,
    WorkflowDefinition,
)
from .cancellation import CancellationToken
from .exceptions import NodeExecutionError, ToolRegistryError
from .generation_client import GenerationClient
from .graph_manager import GraphSnapshot
from .logging import clear_logging_context, get_logger, set_logging_context
from .roadmap_reconciler import reconcile
from .structured_extractor import extract_json
from .tool_registry import ToolRegistry
from .variable_context import VariableContext

logger = get_logger(__name__)

CANCELLED_MESSAGE = "Execution cancelled"

# Keys of a context cell that parsed model replies may not overwrite
CELL_KEYS = ("text", "parts")

LogListener = Callable[[ExecutionLogEntry], Any]

STRUCTURED_FIELDS = (
    ("structured_product_name", "Product Name"),
    ("structured_persona", "Target Persona"),
    ("structured_features", "Key Features"),
    ("structured_constraints", "Constraints"),
    ("structured_resources", "Resources"),
)


def build_structured_brief(config: TriggerConfig) -> str:
    """Render the structured trigger fields as a labelled brief."""
    lines = []
    for field_name, label in STRUCTURED_FIELDS:
        value = getattr(config, field_name)
        if value and value.strip():
            lines.append(f"{label}: {value.strip()}")
    if config.static_input.strip():
        lines.append(f"Additional Context: {config.static_input.strip()}")
    return "\n".join(lines)


class WorkflowExecutor:
    """Executes workflows strictly sequentially, stopping at the first node error.

    One ``execute`` call is one run. All context and log mutation happens
    on that call's task; listeners receive copies of each log transition.
    """

    def __init__(
        self,
        generation_client: GenerationClient,
        tool_registry: Optional[ToolRegistry] = None,
        default_model: str = DEFAULT_MODEL,
        default_timeout_ms: int = 240000,
        default_max_retries: int = 3,
        node_pacing_ms: int = 0,
        extraction_var: str = "extractedData",
        planning_var: str = "roadmapPlan"
    ):
        """Initialize the executor.

        Args:
            generation_client: Client used by AGENT nodes
            tool_registry: Registry used by TOOL nodes
            default_model: Model for agent nodes that do not name one
            default_timeout_ms: Per-call timeout unless a node overrides it
            default_max_retries: Rate-limit retries unless a node overrides it
            node_pacing_ms: Delay after each successful node
            extraction_var: Context slot holding the extraction output
            planning_var: Context slot holding the planning output
        """
        self.generation_client = generation_client
        self.tool_registry = tool_registry or ToolRegistry()
        self.default_model = default_model
        self.default_timeout_ms = default_timeout_ms
        self.default_max_retries = default_max_retries
        self.node_pacing_ms = node_pacing_ms
        self.extraction_var = extraction_var
        self.planning_var = planning_var

    async def execute(
        self,
        workflow: WorkflowDefinition,
        initial_input: Optional[str] = None,
        run_id: Optional[str] = None,
        token: Optional[CancellationToken] = None,
        on_log: Optional[LogListener] = None
    ) -> RunResult:
        """
        Run a workflow to completion, failure or cancellation.

        Args:
            workflow: Workflow to run; a snapshot is taken up front
            initial_input: Overrides the text of the first trigger node
            run_id: Identifier for the run (generated if omitted)
            token: Cancellation token checked between nodes and during calls
            on_log: Listener called with a copy of every log transition

        Returns:
            RunResult: status, logs and context, also after failure
        """
        run_id = run_id or str(uuid.uuid4())
        snapshot = GraphSnapshot(workflow)
        order = snapshot.ordered_nodes()
        context = VariableContext()
        result = RunResult(
            run_id=run_id,
            status=RunStatus.RUNNING,
            workflow=snapshot.to_workflow(),
            started_at=datetime.utcnow(),
        )

        set_logging_context(run_id=run_id)
        logger.info(f"Starting run {run_id} of '{snapshot.name}' with {len(order)} nodes")
        pending_input = initial_input
        current_entry: Optional[ExecutionLogEntry] = None

        try:
            for node in order:
                if token is not None and token.cancelled:
                    result.status = RunStatus.CANCELLED
                    break

                current_entry = ExecutionLogEntry(node_id=node.id, node_label=node.label, status=NodeStatus.RUNNING)
                result.logs.append(current_entry)
                await self._emit(on_log, current_entry)
                set_logging_context(node_id=node.id)

                override = None
                if node.kind == NodeKind.TRIGGER and pending_input is not None:
                    override, pending_input = pending_input, None

                try:
                    node_input, output, grounding = await self._execute_node(node, context, token, result, override)
                except NodeExecutionError as e:
                    self._finish_entry(current_entry, NodeStatus.ERROR, output=e.message)
                    await self._emit(on_log, current_entry)
                    result.error = e.message
                    result.status = RunStatus.CANCELLED if e.context.get("cancelled") else RunStatus.FAILED
                    logger.error(f"Node {node.id} failed, stopping run {run_id}: {e.message}")
                    break

                self._finish_entry(current_entry, NodeStatus.SUCCESS, node_input, output, grounding)
                await self._emit(on_log, current_entry)
                current_entry = None

                if self.node_pacing_ms > 0:
                    delay = self.node_pacing_ms / 1000
                    if token is not None:
                        if await token.sleep(delay):
                            result.status = RunStatus.CANCELLED
                            break
                    else:
                        await asyncio.sleep(delay)
            else:
                result.status = RunStatus.COMPLETED

            if result.status == RunStatus.CANCELLED and result.error is None:
                result.error = CANCELLED_MESSAGE

            if result.status == RunStatus.COMPLETED:
                try:
                    result.roadmap = self._reconcile(context)
                except Exception as e:
                    logger.exception(f"Roadmap reconciliation failed for run {run_id}: {e}")

        except asyncio.CancelledError:
            if current_entry is not None and current_entry.status == NodeStatus.RUNNING:
                self._finish_entry(current_entry, NodeStatus.ERROR, output=CANCELLED_MESSAGE)
            result.status = RunStatus.CANCELLED
            result.error = CANCELLED_MESSAGE
            raise
        finally:
            result.context = context.snapshot()
            result.completed_at = datetime.utcnow()
            logger.info(f"Run {run_id} finished with status {result.status.value}")
            clear_logging_context()

        return result

    async def _execute_node(
        self,
        node: NodeDefinition,
        context: VariableContext,
        token: Optional[CancellationToken],
        result: RunResult,
        override: Optional[str]
    ) -> Tuple[Any, Any, Optional[Dict[str, Any]]]:
        """Dispatch one node by kind; returns (input, output, grounding)."""
        try:
            config = node.config
            if isinstance(config, TriggerConfig):
                return self._run_trigger(config, context, override)
            if isinstance(config, AgentConfig):
                return await self._run_agent(node, config, context, token, result.run_id)
            if isinstance(config, ToolConfig):
                return await self._run_tool(node, config, context, token, result.run_id)
            if isinstance(config, EndConfig):
                node_input, output = self._run_end(config, context)
                result.final_output = output
                return node_input, output, None
            raise NodeExecutionError(f"Unsupported node kind: {node.kind}", node_id=node.id, run_id=result.run_id)
        except NodeExecutionError:
            raise
        except Exception as e:
            logger.exception(f"Unexpected error in node {node.id}")
            raise NodeExecutionError(
                f"Node {node.id} execution failed: {e}", node_id=node.id, run_id=result.run_id
            ) from e

    def _run_trigger(
        self,
        config: TriggerConfig,
        context: VariableContext,
        override: Optional[str]
    ) -> Tuple[Any, Any, None]:
        parts = []
        if config.input_type == InputType.STRUCTURED:
            text = build_structured_brief(config)
        else:
            text = config.static_input
        if override is not None:
            text = override

        if config.input_type == InputType.FILE and config.file_data:
            parts.append(MediaPart(mime_type=config.file_mime_type or "application/octet-stream", data=config.file_data))
            if not text and config.file_name:
                text = f"Attached file: {config.file_name}"
        elif config.input_type == InputType.AUDIO and config.audio_data:
            parts.append(MediaPart(mime_type=config.audio_mime_type, data=config.audio_data))

        cell: Dict[str, Any] = {"text": text}
        if parts:
            cell["parts"] = [part.model_dump() for part in parts]
        context.set(config.output_var, cell)
        return text, text, None

    async def _run_agent(
        self,
        node: NodeDefinition,
        config: AgentConfig,
        context: VariableContext,
        token: Optional[CancellationToken],
        run_id: str
    ) -> Tuple[Any, Any, Optional[Dict[str, Any]]]:
        content_parts = context.construct_parts(config.prompt)
        prompt_text = "".join(part.text for part in content_parts if part.text is not None)

        request = GenerationRequest(
            model_name=config.model or self.default_model,
            content_parts=content_parts,
            system_instruction=config.system_instruction,
            use_search=config.use_search,
            thinking_budget=config.thinking_budget,
            timeout_ms=config.timeout_ms or self.default_timeout_ms,
            max_retries=config.max_retries if config.max_retries is not None else self.default_max_retries,
        )
        response = await self.generation_client.generate(request, token)

        if response.error is not None:
            error = NodeExecutionError(
                response.error,
                node_id=node.id,
                run_id=run_id,
                details={"error_kind": response.error_kind, "attempts": response.attempts},
            )
            if response.error_kind == "cancelled":
                error.add_context(cancelled=True)
            raise error

        parsed = extract_json(response.text)
        if parsed is not None:
            fields = {key: value for key, value in parsed.items() if key not in CELL_KEYS}
            context.set(config.output_var, {**fields, "text": response.text})
        else:
            context.set(config.output_var, {"text": response.text})

        logger.debug(f"Agent {node.id} wrote '{config.output_var}' ({len(response.text)} chars, "
                     f"json={'yes' if parsed is not None else 'no'})")
        return prompt_text, response.text, response.grounding_metadata

    async def _run_tool(
        self,
        node: NodeDefinition,
        config: ToolConfig,
        context: VariableContext,
        token: Optional[CancellationToken],
        run_id: str
    ) -> Tuple[Any, Any, None]:
        text = context.interpolate(config.input_template)
        try:
            output = await self.tool_registry.call_tool(
                config.tool_name, text, context=context.snapshot(), **config.parameters
            )
        except ToolRegistryError as e:
            raise NodeExecutionError(e.message, node_id=node.id, run_id=run_id, details=e.details) from e

        if token is not None and token.cancelled:
            raise NodeExecutionError(CANCELLED_MESSAGE, node_id=node.id, run_id=run_id).add_context(cancelled=True)

        if isinstance(output, (Mapping, str)):
            context.set(config.output_var, output)
        else:
            context.set(config.output_var, VariableContext.render(output))

        cell = context.get(config.output_var)
        return text, cell.get("text", ""), None

    def _run_end(self, config: EndConfig, context: VariableContext) -> Tuple[Any, str]:
        source_name = None
        cell = None
        if config.source_var and config.source_var in context:
            source_name, cell = config.source_var, context.get(config.source_var)
        else:
            last = context.last_written()
            if last is not None:
                source_name, cell = last

        text = VariableContext.render(cell)
        context.set(config.output_var, {"text": text})
        return source_name, text

    def _reconcile(self, context: VariableContext):
        extraction = context.get(self.extraction_var)
        planning = context.get(self.planning_var)
        if extraction is None or planning is None:
            logger.debug("Skipping roadmap reconciliation: extraction or planning output missing")
            return None
        return reconcile(extraction, planning)

    @staticmethod
    def _finish_entry(
        entry: ExecutionLogEntry,
        status: NodeStatus,
        node_input: Any = None,
        output: Any = None,
        grounding: Optional[Dict[str, Any]] = None
    ):
        entry.status = status
        if node_input is not None:
            entry.input = node_input
        entry.output = output
        entry.grounding_metadata = grounding
        entry.timestamp = datetime.utcnow()

    @staticmethod
    async def _emit(on_log: Optional[LogListener], entry: ExecutionLogEntry):
        if on_log is None:
            return
        try:
            outcome = on_log(entry.model_copy(deep=True))
            if inspect.isawaitable(outcome):
                await outcome
        except Exception as e:
            logger.warning(f"Log listener failed for node {entry.node_id}: {e}")
