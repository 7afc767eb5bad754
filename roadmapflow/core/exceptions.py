"""Custom exceptions for the workflow engine with detailed error information."""

from datetime import datetime
from typing import Optional, Dict, Any, List
from enum import Enum


class ErrorSeverity(Enum):
    """Error severity levels for categorizing exceptions."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCategory(Enum):
    """Categories of errors for better classification."""
    VALIDATION = "validation"
    EXECUTION = "execution"
    STORAGE = "storage"
    NETWORK = "network"
    CONFIGURATION = "configuration"
    RESOURCE = "resource"


class WorkflowEngineError(Exception):
    """Base exception for all workflow engine errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        category: ErrorCategory = ErrorCategory.EXECUTION,
        details: Optional[Dict[str, Any]] = None,
        recoverable: bool = False,
        retry_after: Optional[float] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.severity = severity
        self.category = category
        self.details = details or {}
        self.recoverable = recoverable
        self.retry_after = retry_after
        self.context = context or {}
        self.timestamp = datetime.utcnow()

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging and API responses."""
        return {
            "error_code": self.error_code,
            "message": self.message,
            "severity": self.severity.value,
            "category": self.category.value,
            "details": self.details,
            "recoverable": self.recoverable,
            "retry_after": self.retry_after,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "exception_type": self.__class__.__name__
        }

    def add_context(self, **kwargs):
        """Add additional context to the exception."""
        self.context.update(kwargs)
        return self

    def add_details(self, **kwargs):
        """Add additional details to the exception."""
        self.details.update(kwargs)
        return self


class GraphValidationError(WorkflowEngineError):
    """Raised when a workflow definition is structurally invalid."""

    def __init__(
        self,
        message: str,
        validation_errors: Optional[List[str]] = None,
        workflow_name: Optional[str] = None,
        **kwargs
    ):
        super().__init__(
            message,
            severity=ErrorSeverity.MEDIUM,
            category=ErrorCategory.VALIDATION,
            **kwargs
        )
        self.validation_errors = validation_errors or []
        if workflow_name:
            self.add_context(workflow_name=workflow_name)
        if validation_errors:
            self.add_details(validation_errors=validation_errors)


class NodeExecutionError(WorkflowEngineError):
    """Raised when a node fails; the only error class that aborts a run."""

    def __init__(
        self,
        message: str,
        node_id: Optional[str] = None,
        run_id: Optional[str] = None,
        **kwargs
    ):
        super().__init__(
            message,
            severity=ErrorSeverity.HIGH,
            category=ErrorCategory.EXECUTION,
            **kwargs
        )
        if node_id:
            self.add_context(node_id=node_id)
        if run_id:
            self.add_context(run_id=run_id)


class GenerationError(WorkflowEngineError):
    """Base class for failures of the external generation service."""

    kind = "provider"

    def __init__(self, message: str, status_code: Optional[int] = None, **kwargs):
        kwargs.setdefault("category", ErrorCategory.NETWORK)
        super().__init__(message, **kwargs)
        self.status_code = status_code
        if status_code is not None:
            self.add_details(status_code=status_code)


class RateLimitError(GenerationError):
    """HTTP 429 / RESOURCE_EXHAUSTED; retried with exponential backoff."""

    kind = "rate_limit"

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("status_code", 429)
        super().__init__(
            message,
            severity=ErrorSeverity.MEDIUM,
            category=ErrorCategory.RESOURCE,
            recoverable=True,
            **kwargs
        )


class ProviderError(GenerationError):
    """Non-retryable provider failure (bad request, auth, transport)."""

    kind = "provider"

    def __init__(self, message: str, **kwargs):
        super().__init__(message, severity=ErrorSeverity.HIGH, **kwargs)


class GenerationTimeoutError(GenerationError):
    """No response within the per-call timeout."""

    kind = "timeout"

    def __init__(self, message: str, timeout_ms: Optional[int] = None, **kwargs):
        super().__init__(message, severity=ErrorSeverity.HIGH, **kwargs)
        if timeout_ms is not None:
            self.add_details(timeout_ms=timeout_ms)


class GenerationCancelledError(GenerationError):
    """The call was aborted through a cancellation token."""

    kind = "cancelled"

    def __init__(self, message: str = "Execution cancelled", **kwargs):
        super().__init__(message, severity=ErrorSeverity.LOW, category=ErrorCategory.EXECUTION, **kwargs)


class ToolRegistryError(WorkflowEngineError):
    """Raised when tool registry operations fail."""

    def __init__(
        self,
        message: str,
        tool_name: Optional[str] = None,
        **kwargs
    ):
        super().__init__(
            message,
            severity=ErrorSeverity.MEDIUM,
            category=ErrorCategory.CONFIGURATION,
            **kwargs
        )
        if tool_name:
            self.add_context(tool_name=tool_name)


class ExecutionEngineError(WorkflowEngineError):
    """Raised when run management operations fail."""

    def __init__(
        self,
        message: str,
        run_id: Optional[str] = None,
        **kwargs
    ):
        kwargs.setdefault("severity", ErrorSeverity.HIGH)
        super().__init__(
            message,
            category=ErrorCategory.EXECUTION,
            **kwargs
        )
        if run_id:
            self.add_context(run_id=run_id)


class RunNotFoundError(ExecutionEngineError):
    """Raised when a run ID is unknown."""

    def __init__(self, run_id: str):
        super().__init__(f"Run {run_id} not found", run_id=run_id, severity=ErrorSeverity.LOW)


class RunConflictError(ExecutionEngineError):
    """Raised when a session already has an active run."""

    def __init__(self, session_id: str, active_run_id: str):
        super().__init__(
            f"Session '{session_id}' already has an active run: {active_run_id}",
            run_id=active_run_id,
            severity=ErrorSeverity.MEDIUM,
            recoverable=True,
        )
        self.add_context(session_id=session_id)


class StorageError(WorkflowEngineError):
    """Raised when storage operations fail."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        **kwargs
    ):
        super().__init__(
            message,
            severity=ErrorSeverity.HIGH,
            category=ErrorCategory.STORAGE,
            **kwargs
        )
        if operation:
            self.add_context(operation=operation)


def create_error_response(error: WorkflowEngineError) -> Dict[str, Any]:
    """Create a standardized error response from a WorkflowEngineError."""
    return {
        "error": error.error_code,
        "message": error.message,
        "details": {
            **error.details,
            "severity": error.severity.value,
            "category": error.category.value,
            "recoverable": error.recoverable,
            "retry_after": error.retry_after,
            "timestamp": error.timestamp.isoformat()
        },
        "context": error.context
    }
