"""Core workflow engine components."""

from .exceptions import (
    WorkflowEngineError,
    GraphValidationError,
    NodeExecutionError,
    GenerationError,
    RateLimitError,
    ProviderError,
    GenerationTimeoutError,
    GenerationCancelledError,
    ToolRegistryError,
    ExecutionEngineError,
    RunNotFoundError,
    RunConflictError,
    StorageError,
)
from .logging import setup_logging, get_logger
from .cancellation import CancellationToken
from .graph_manager import GraphManager, GraphSnapshot, topological_order
from .variable_context import VariableContext
from .structured_extractor import extract_json, extract_fenced_code, coerce_json
from .generation_client import GenerationClient, GenerationProvider, GeminiProvider
from .roadmap_reconciler import reconcile, match_priority, match_dependencies, extract_milestones
from .tool_registry import ToolRegistry
from .execution_engine import WorkflowExecutor
from .state_manager import StateManager

__all__ = [
    "WorkflowEngineError",
    "GraphValidationError",
    "NodeExecutionError",
    "GenerationError",
    "RateLimitError",
    "ProviderError",
    "GenerationTimeoutError",
    "GenerationCancelledError",
    "ToolRegistryError",
    "ExecutionEngineError",
    "RunNotFoundError",
    "RunConflictError",
    "StorageError",
    "setup_logging",
    "get_logger",
    "CancellationToken",
    "GraphManager",
    "GraphSnapshot",
    "topological_order",
    "VariableContext",
    "extract_json",
    "extract_fenced_code",
    "coerce_json",
    "GenerationClient",
    "GenerationProvider",
    "GeminiProvider",
    "reconcile",
    "match_priority",
    "match_dependencies",
    "extract_milestones",
    "ToolRegistry",
    "WorkflowExecutor",
    "StateManager",
]
