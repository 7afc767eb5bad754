"""Core Pydantic models for the workflow engine."""

from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .roadmap import RoadmapData

DEFAULT_MODEL = "gemini-3-flash-preview"


class NodeKind(str, Enum):
    """Kinds of workflow nodes."""
    TRIGGER = "TRIGGER"
    AGENT = "AGENT"
    TOOL = "TOOL"
    END = "END"


class InputType(str, Enum):
    """Input modes supported by trigger nodes."""
    TEXT = "text"
    FILE = "file"
    AUDIO = "audio"
    STRUCTURED = "structured"


class NodeStatus(str, Enum):
    """Per-node execution status as shown in the run log."""
    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    ERROR = "error"


class RunStatus(str, Enum):
    """Enumeration of workflow run statuses."""
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class ValidationResult(BaseModel):
    """Result of workflow validation."""
    is_valid: bool = Field(..., description="Whether the workflow is valid")
    errors: List[str] = Field(default_factory=list, description="List of validation errors")
    warnings: List[str] = Field(default_factory=list, description="List of validation warnings")


class MediaPart(BaseModel):
    """Binary payload descriptor threaded into a multimodal prompt."""
    mime_type: str = Field(..., description="MIME type of the payload")
    data: str = Field(..., description="Base64 encoded payload")


class ContentPart(BaseModel):
    """One part of a generation request: either text or inline media."""
    text: Optional[str] = Field(None, description="Text content")
    inline_data: Optional[MediaPart] = Field(None, description="Inline media content")

    @model_validator(mode='after')
    def validate_exactly_one(self):
        """A part carries text or media, never both."""
        if (self.text is None) == (self.inline_data is None):
            raise ValueError("Content part must have exactly one of 'text' or 'inline_data'")
        return self


class ContextValue(BaseModel):
    """Value cell stored in the variable context.

    Agent replies that parse as JSON objects are merged into the cell, so
    extra fields are allowed alongside ``text`` and ``parts``.
    """
    model_config = ConfigDict(extra="allow")

    text: str = Field(default="", description="Text rendering of the value")
    parts: Optional[List[MediaPart]] = Field(None, description="Binary payloads for multimodal prompts")


class TriggerConfig(BaseModel):
    """Configuration of a trigger node."""
    kind: Literal["TRIGGER"] = "TRIGGER"
    output_var: str = Field(default="userInput", description="Context variable to write")
    input_type: InputType = Field(default=InputType.TEXT, description="Input mode")
    static_input: str = Field(default="", description="Text input")
    file_data: Optional[str] = Field(None, description="Base64 file payload")
    file_name: Optional[str] = None
    file_mime_type: Optional[str] = None
    audio_data: Optional[str] = Field(None, description="Base64 audio payload")
    audio_mime_type: str = "audio/webm"
    structured_product_name: Optional[str] = None
    structured_persona: Optional[str] = None
    structured_features: Optional[str] = None
    structured_constraints: Optional[str] = None
    structured_resources: Optional[str] = None


class AgentConfig(BaseModel):
    """Configuration of an agent (model call) node."""
    kind: Literal["AGENT"] = "AGENT"
    output_var: str = Field(default="output", description="Context variable to write")
    prompt: str = Field(default="", description="Prompt template with {{path}} tokens")
    system_instruction: Optional[str] = None
    model: Optional[str] = Field(None, description="Model identifier; the configured default when unset")
    use_search: bool = Field(default=False, description="Attach the search tool")
    thinking_budget: Optional[int] = Field(None, description="Reasoning token budget, 0 disables")
    timeout_ms: Optional[int] = Field(None, description="Per-call timeout override")
    max_retries: Optional[int] = Field(None, description="Rate-limit retry override")

    @field_validator('thinking_budget', 'max_retries')
    @classmethod
    def validate_non_negative(cls, value):
        """Budgets and retry counts cannot be negative."""
        if value is not None and value < 0:
            raise ValueError("Value must be a non-negative integer")
        return value

    @field_validator('timeout_ms')
    @classmethod
    def validate_timeout(cls, timeout_ms):
        """Ensure timeout is positive if specified."""
        if timeout_ms is not None and timeout_ms <= 0:
            raise ValueError("Timeout must be a positive integer")
        return timeout_ms


class ToolConfig(BaseModel):
    """Configuration of a tool node."""
    kind: Literal["TOOL"] = "TOOL"
    output_var: str = Field(default="toolOutput", description="Context variable to write")
    tool_name: str = Field(..., description="Name of a registered tool")
    input_template: str = Field(default="", description="Template rendered as the tool input")
    parameters: Dict[str, Any] = Field(default_factory=dict, description="Extra keyword arguments")


class EndConfig(BaseModel):
    """Configuration of an end node."""
    kind: Literal["END"] = "END"
    output_var: str = Field(default="finalOutput", description="Context variable to write")
    source_var: Optional[str] = Field(None, description="Variable to display instead of the last written one")


NodeConfig = Annotated[
    Union[TriggerConfig, AgentConfig, ToolConfig, EndConfig],
    Field(discriminator="kind"),
]


class NodeDefinition(BaseModel):
    """Definition of a workflow node.

    UI-only fields (position, status, subtasks) are accepted and dropped.
    """
    id: str = Field(..., description="Unique identifier for the node")
    kind: NodeKind = Field(..., description="Kind of node")
    label: str = Field(default="", description="Display label")
    description: Optional[str] = None
    config: NodeConfig

    @model_validator(mode='before')
    @classmethod
    def apply_config_kind(cls, data):
        """Let the config inherit the node kind when it does not state one."""
        if not isinstance(data, dict):
            return data
        data = dict(data)
        if "kind" not in data and "type" in data:
            data["kind"] = data["type"]
        kind = data.get("kind")
        if isinstance(kind, NodeKind):
            kind = kind.value
        config = data.get("config")
        if config is None:
            config = {}
        if isinstance(config, dict) and "kind" not in config and kind is not None:
            data["config"] = {**config, "kind": kind}
        return data

    @field_validator('id')
    @classmethod
    def validate_id(cls, id_value):
        """Ensure node ID is not empty."""
        if not id_value or not id_value.strip():
            raise ValueError("Node ID cannot be empty")
        return id_value.strip()

    @model_validator(mode='after')
    def validate_config_kind(self):
        """The config variant must match the node kind."""
        if self.config.kind != self.kind:
            raise ValueError(
                f"Config kind '{self.config.kind}' does not match node kind '{self.kind.value}'"
            )
        return self

    @property
    def output_var(self) -> str:
        return self.config.output_var


class EdgeDefinition(BaseModel):
    """Directed edge between two workflow nodes. Self-loops are allowed."""
    id: str = Field(default="", description="Edge identifier")
    source: str = Field(..., description="Source node ID")
    target: str = Field(..., description="Target node ID")

    @field_validator('source', 'target')
    @classmethod
    def validate_node_ids(cls, node_id):
        """Ensure node IDs are valid."""
        if not node_id or not node_id.strip():
            raise ValueError("Node ID cannot be empty")
        return node_id.strip()

    @model_validator(mode='after')
    def default_id(self):
        if not self.id:
            self.id = f"{self.source}->{self.target}"
        return self


class WorkflowDefinition(BaseModel):
    """Complete definition of a workflow graph."""
    name: str = Field(default="Untitled Workflow", description="Name of the workflow")
    description: str = Field(default="", description="Description of the workflow")
    nodes: List[NodeDefinition] = Field(default_factory=list, description="Nodes in declaration order")
    edges: List[EdgeDefinition] = Field(default_factory=list, description="Edges connecting nodes")

    @field_validator('nodes')
    @classmethod
    def validate_unique_node_ids(cls, nodes):
        """Ensure all node IDs are unique."""
        node_ids = [node.id for node in nodes]
        if len(node_ids) != len(set(node_ids)):
            raise ValueError("All node IDs must be unique")
        return nodes

    def find_node(self, node_id: str) -> Optional[NodeDefinition]:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None


class ExecutionLogEntry(BaseModel):
    """One entry per executed node; created running, finalized once."""
    node_id: str = Field(..., description="ID of the executed node")
    node_label: str = Field(default="", description="Label of the executed node")
    status: NodeStatus = Field(..., description="Node execution status")
    input: Optional[Any] = Field(None, description="Rendered input sent to the node")
    output: Optional[Any] = Field(None, description="Node output or error message")
    timestamp: datetime = Field(default_factory=datetime.utcnow, description="Time of the last transition")
    grounding_metadata: Optional[Dict[str, Any]] = Field(None, description="Search grounding returned by the model")


class GenerationRequest(BaseModel):
    """Request for a single generation call."""
    model_name: str = Field(default=DEFAULT_MODEL, description="Model identifier")
    content_parts: List[ContentPart] = Field(default_factory=list, description="Prompt parts")
    system_instruction: Optional[str] = None
    use_search: bool = False
    thinking_budget: Optional[int] = None
    timeout_ms: int = Field(default=240000, description="Per-attempt timeout in milliseconds")
    max_retries: int = Field(default=3, description="Retries on rate limiting")

    @field_validator('timeout_ms')
    @classmethod
    def validate_timeout(cls, timeout_ms):
        if timeout_ms <= 0:
            raise ValueError("Timeout must be a positive integer")
        return timeout_ms

    @field_validator('max_retries')
    @classmethod
    def validate_retries(cls, max_retries):
        if max_retries < 0:
            raise ValueError("max_retries cannot be negative")
        return max_retries


class GenerationResult(BaseModel):
    """Outcome of a generation call. Callers branch on ``error``."""
    text: str = Field(default="", description="Generated text")
    error: Optional[str] = Field(None, description="Error message when the call failed")
    error_kind: Optional[str] = Field(None, description="timeout, rate_limit, cancelled or provider")
    grounding_metadata: Optional[Dict[str, Any]] = None
    attempts: int = Field(default=0, description="Number of provider calls made")

    @property
    def ok(self) -> bool:
        return self.error is None


class RunResult(BaseModel):
    """Final (or partial) state of one workflow run."""
    run_id: str = Field(..., description="Unique identifier for the run")
    status: RunStatus = Field(default=RunStatus.IDLE, description="Run status")
    workflow: WorkflowDefinition = Field(..., description="Workflow snapshot that was executed")
    logs: List[ExecutionLogEntry] = Field(default_factory=list, description="Per-node log entries in order")
    context: Dict[str, Any] = Field(default_factory=dict, description="Variable context at run end")
    roadmap: Optional[RoadmapData] = Field(None, description="Reconciled roadmap, if available")
    final_output: Optional[str] = Field(None, description="Output aggregated by the end node")
    error: Optional[str] = Field(None, description="Error message when the run failed")
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    def export(self) -> Dict[str, Any]:
        """Return the tuple handed to the host application for persistence."""
        return {
            "nodes": [node.model_dump(mode="json") for node in self.workflow.nodes],
            "edges": [edge.model_dump(mode="json") for edge in self.workflow.edges],
            "logs": [entry.model_dump(mode="json") for entry in self.logs],
            "roadmap_data": self.roadmap.model_dump(mode="json") if self.roadmap else None,
        }


class Project(BaseModel):
    """Saved workflow project."""
    id: str = Field(..., description="Project ID")
    name: str = Field(default="New Roadmap", description="Project name")
    nodes: List[NodeDefinition] = Field(default_factory=list)
    edges: List[EdgeDefinition] = Field(default_factory=list)
    logs: List[ExecutionLogEntry] = Field(default_factory=list)
    roadmap: Optional[RoadmapData] = None
    updated_at: datetime = Field(default_factory=datetime.utcnow, description="Last save timestamp")

    def to_workflow(self) -> WorkflowDefinition:
        return WorkflowDefinition(name=self.name, nodes=self.nodes, edges=self.edges)
