"""Data models for the workflow engine."""

from .core import (
    DEFAULT_MODEL,
    NodeKind,
    InputType,
    NodeStatus,
    RunStatus,
    ValidationResult,
    MediaPart,
    ContentPart,
    ContextValue,
    TriggerConfig,
    AgentConfig,
    ToolConfig,
    EndConfig,
    NodeDefinition,
    EdgeDefinition,
    WorkflowDefinition,
    ExecutionLogEntry,
    GenerationRequest,
    GenerationResult,
    RunResult,
    Project,
)
from .roadmap import (
    PriorityLevel,
    RiskLevel,
    FeatureStatus,
    Workstream,
    Subtask,
    RoadmapFeature,
    Milestone,
    AIInsight,
    RoadmapData,
)

__all__ = [
    "DEFAULT_MODEL",
    "NodeKind",
    "InputType",
    "NodeStatus",
    "RunStatus",
    "ValidationResult",
    "MediaPart",
    "ContentPart",
    "ContextValue",
    "TriggerConfig",
    "AgentConfig",
    "ToolConfig",
    "EndConfig",
    "NodeDefinition",
    "EdgeDefinition",
    "WorkflowDefinition",
    "ExecutionLogEntry",
    "GenerationRequest",
    "GenerationResult",
    "RunResult",
    "Project",
    "PriorityLevel",
    "RiskLevel",
    "FeatureStatus",
    "Workstream",
    "Subtask",
    "RoadmapFeature",
    "Milestone",
    "AIInsight",
    "RoadmapData",
]
