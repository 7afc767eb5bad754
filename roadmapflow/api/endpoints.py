"""FastAPI REST endpoints for the roadmap workflow engine."""

from datetime import datetime
from typing import Dict, List, Any, Optional
from fastapi import APIRouter, Body, HTTPException, Depends, status
from pydantic import BaseModel, Field, ValidationError

from ..core.graph_manager import GraphManager
from ..core.tool_registry import ToolRegistry
from ..core.state_manager import StateManager
from ..core.exceptions import (
    GraphValidationError,
    WorkflowEngineError,
    create_error_response
)
from ..core.middleware import status_code_for_error
from ..models.core import (
    DEFAULT_MODEL,
    ExecutionLogEntry,
    NodeDefinition,
    NodeKind,
    Project,
    RunResult,
    ValidationResult,
    WorkflowDefinition,
)
from ..models.templates import build_roadmap_workflow
from ..storage.project_store import ProjectStore
from ..core.logging import get_logger

logger = get_logger(__name__)

# Create router
router = APIRouter(prefix="/api/v1", tags=["workflow"])

# Global instances (initialized by the application factory)
_graph_manager: Optional[GraphManager] = None
_state_manager: Optional[StateManager] = None
_tool_registry: Optional[ToolRegistry] = None
_project_store: Optional[ProjectStore] = None
_default_model: str = DEFAULT_MODEL
_run_retention_hours: int = 24

PROJECT_NAME_LENGTH = 30


def init_dependencies(
    graph_manager: GraphManager,
    state_manager: StateManager,
    tool_registry: ToolRegistry,
    project_store: ProjectStore,
    default_model: str = DEFAULT_MODEL,
    run_retention_hours: int = 24
):
    """Initialize the global dependencies."""
    global _graph_manager, _state_manager, _tool_registry, _project_store
    global _default_model, _run_retention_hours
    _graph_manager = graph_manager
    _state_manager = state_manager
    _tool_registry = tool_registry
    _project_store = project_store
    _default_model = default_model
    _run_retention_hours = run_retention_hours


def get_graph_manager() -> GraphManager:
    """Dependency to get graph manager."""
    if _graph_manager is None:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Graph manager not initialized"
        )
    return _graph_manager


def get_state_manager() -> StateManager:
    """Dependency to get state manager."""
    if _state_manager is None:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="State manager not initialized"
        )
    return _state_manager


def get_tool_registry() -> ToolRegistry:
    """Dependency to get tool registry."""
    if _tool_registry is None:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Tool registry not initialized"
        )
    return _tool_registry


def get_project_store() -> ProjectStore:
    """Dependency to get project store."""
    if _project_store is None:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Project store not initialized"
        )
    return _project_store


def project_name_from_input(text: Optional[str]) -> str:
    """Name a project after the start of its input text."""
    text = (text or "").strip()
    if not text:
        return "New Roadmap"
    if len(text) > PROJECT_NAME_LENGTH:
        return text[:PROJECT_NAME_LENGTH] + "..."
    return text


def _engine_error(e: WorkflowEngineError, not_found: bool = False) -> HTTPException:
    """Map an engine error onto an HTTP error carrying the standard body."""
    return HTTPException(
        status_code=status_code_for_error(e, not_found=not_found),
        detail=create_error_response(e)
    )


def _internal_error(message: str, e: Exception) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail={
            "error": "InternalError",
            "message": message,
            "details": {"original_error": str(e)},
            "timestamp": datetime.utcnow().isoformat()
        }
    )


def _project_not_found(project_id: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail={
            "error": "ProjectNotFound",
            "message": f"Project with ID '{project_id}' not found",
            "details": {"project_id": project_id}
        }
    )


def _validation_failed(e: ValidationError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        detail={
            "error": "ValidationError",
            "message": "Invalid node definition",
            "details": {"errors": e.errors(include_url=False, include_context=False)}
        }
    )


# Request/Response models
class RunRequest(BaseModel):
    """Request model for starting a run."""
    session_id: str = Field(..., description="Caller session; one active run per session")
    workflow: Optional[WorkflowDefinition] = Field(None, description="Workflow to execute")
    input: Optional[str] = Field(None, description="Overrides the first trigger's text")
    project_id: Optional[str] = Field(None, description="Project to run and save the result into")
    wait: bool = Field(default=False, description="Block until the run finishes")


class RunResponse(BaseModel):
    """Response model for a started run."""
    run_id: str = Field(..., description="Unique identifier for the run")
    session_id: str = Field(..., description="Session that owns the run")
    status: str = Field(..., description="Run status")
    message: str = Field(..., description="Status message")
    result: Optional[RunResult] = Field(None, description="Run result when waited for")


class RunStateResponse(BaseModel):
    """Current state of a run."""
    run_id: str
    session_id: str
    workflow_name: str
    status: str
    error: Optional[str] = None
    created_at: str
    completed_at: Optional[str] = None
    log_count: int = 0
    logs: List[ExecutionLogEntry] = Field(default_factory=list)
    result: Optional[RunResult] = None


class CancelResponse(BaseModel):
    """Response model for a cancellation request."""
    run_id: str
    cancelled: bool
    message: str


class CreateNodeRequest(BaseModel):
    """Request model for adding a child node."""
    parent_id: str = Field(..., description="Node the new node is linked from")
    label: str = Field(..., description="Display label of the new node")
    kind: NodeKind = Field(default=NodeKind.AGENT, description="Kind of node")
    config: Optional[Dict[str, Any]] = Field(None, description="Config overrides")


class CreateNodeResponse(BaseModel):
    """Response model for node creation."""
    node: NodeDefinition
    project: Project


class UpdateNodeRequest(BaseModel):
    """Request model for editing a node; config keys are merged."""
    label: Optional[str] = None
    description: Optional[str] = None
    config: Optional[Dict[str, Any]] = None


class ErrorResponse(BaseModel):
    """Standard error response model."""
    error: str = Field(..., description="Error type")
    message: str = Field(..., description="Error message")
    details: Optional[Dict[str, Any]] = Field(None, description="Additional error details")


# Endpoints

@router.get(
    "/workflow/default",
    response_model=WorkflowDefinition,
    summary="Get the default roadmap workflow"
)
async def get_default_workflow() -> WorkflowDefinition:
    """Return the seven-node roadmap workflow template."""
    return build_roadmap_workflow(_default_model)


@router.post(
    "/workflow/validate",
    response_model=ValidationResult,
    summary="Validate a workflow definition",
    description="Validate a workflow and report errors and warnings without running it"
)
async def validate_workflow(
    workflow: Dict[str, Any] = Body(...),
    graph_manager: GraphManager = Depends(get_graph_manager)
) -> ValidationResult:
    """
    Validate a workflow definition.

    Args:
        workflow: Raw workflow definition
        graph_manager: Graph manager dependency

    Returns:
        Validation result with errors and warnings
    """
    try:
        return graph_manager.validate_workflow(workflow)
    except Exception as e:
        logger.error(f"Unexpected error during workflow validation: {str(e)}", exc_info=True)
        raise _internal_error("An unexpected error occurred while validating the workflow", e)


@router.post(
    "/workflow/run",
    response_model=RunResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Execute a workflow",
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
    description="Start a workflow run for a session, optionally waiting for it to finish"
)
async def run_workflow(
    request: RunRequest,
    state_manager: StateManager = Depends(get_state_manager),
    project_store: ProjectStore = Depends(get_project_store)
) -> RunResponse:
    """
    Execute a workflow.

    The workflow comes from the request, else from the named project,
    else the default template. With ``project_id`` the finished run is
    saved into that project.

    Raises:
        HTTPException: 404 if the project is missing, 409 if the session
            already has an active run
    """
    try:
        project: Optional[Project] = None
        if request.project_id:
            project = project_store.get(request.project_id)

        if request.workflow is not None:
            workflow = request.workflow
        elif project is not None:
            workflow = project.to_workflow()
        elif request.project_id:
            raise _project_not_found(request.project_id)
        else:
            workflow = build_roadmap_workflow(_default_model)

        on_complete = None
        if request.project_id:
            project_id = request.project_id
            existing_name = project.name if project is not None else None

            def on_complete(result: RunResult):
                project_store.upsert(Project(
                    id=project_id,
                    name=existing_name or project_name_from_input(request.input),
                    nodes=result.workflow.nodes,
                    edges=result.workflow.edges,
                    logs=result.logs,
                    roadmap=result.roadmap,
                ))

        state_manager.cleanup_completed_runs(_run_retention_hours)
        record = state_manager.start_run(request.session_id, workflow, request.input, on_complete)
        logger.info(f"Started run {record.run_id} for workflow '{workflow.name}'")

        if request.wait:
            result = await state_manager.wait_for_run(record.run_id)
            return RunResponse(
                run_id=record.run_id,
                session_id=record.session_id,
                status=result.status.value,
                message=f"Run finished with status {result.status.value}",
                result=result
            )

        return RunResponse(
            run_id=record.run_id,
            session_id=record.session_id,
            status=record.status.value,
            message="Workflow execution started successfully"
        )

    except HTTPException:
        raise
    except WorkflowEngineError as e:
        logger.warning(f"Workflow engine error while starting run: {str(e)}")
        raise _engine_error(e)
    except Exception as e:
        logger.error(f"Unexpected error during workflow execution: {str(e)}", exc_info=True)
        raise _internal_error("An unexpected error occurred while running the workflow", e)


@router.get(
    "/runs",
    summary="List active runs"
)
async def list_active_runs(
    state_manager: StateManager = Depends(get_state_manager)
) -> Dict[str, Any]:
    active = state_manager.get_active_runs()
    return {"active_runs": active, "count": len(active)}


@router.get(
    "/runs/{run_id}",
    response_model=RunStateResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Get run state"
)
async def get_run(
    run_id: str,
    state_manager: StateManager = Depends(get_state_manager)
) -> RunStateResponse:
    """
    Get the current state of a run.

    Raises:
        HTTPException: 404 if the run is unknown
    """
    try:
        record = state_manager.get_run(run_id)
        return RunStateResponse(
            **record.to_dict(),
            logs=state_manager.get_logs(run_id),
            result=record.result
        )
    except WorkflowEngineError as e:
        raise _engine_error(e)


@router.get(
    "/runs/{run_id}/logs",
    response_model=List[ExecutionLogEntry],
    summary="Get run logs"
)
async def get_run_logs(
    run_id: str,
    state_manager: StateManager = Depends(get_state_manager)
) -> List[ExecutionLogEntry]:
    """Return copies of the run's log entries in execution order."""
    try:
        return state_manager.get_logs(run_id)
    except WorkflowEngineError as e:
        raise _engine_error(e)


@router.get(
    "/runs/{run_id}/export",
    summary="Export a finished run"
)
async def export_run(
    run_id: str,
    state_manager: StateManager = Depends(get_state_manager)
) -> Dict[str, Any]:
    """Return nodes, edges, logs and roadmap data of a finished run."""
    try:
        record = state_manager.get_run(run_id)
    except WorkflowEngineError as e:
        raise _engine_error(e)

    if record.result is None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={
                "error": "RunNotFinished",
                "message": f"Run '{run_id}' has no result yet",
                "details": {"run_id": run_id, "status": record.status.value}
            }
        )
    return record.result.export()


@router.post(
    "/runs/{run_id}/cancel",
    response_model=CancelResponse,
    summary="Cancel a run"
)
async def cancel_run(
    run_id: str,
    state_manager: StateManager = Depends(get_state_manager)
) -> CancelResponse:
    """Signal cancellation; the run stops before its next node or during its current call."""
    try:
        cancelled = state_manager.cancel_run(run_id)
    except WorkflowEngineError as e:
        raise _engine_error(e)

    return CancelResponse(
        run_id=run_id,
        cancelled=cancelled,
        message="Cancellation requested" if cancelled else "Run is not active"
    )


@router.get(
    "/projects",
    response_model=List[Project],
    summary="List saved projects"
)
async def list_projects(
    project_store: ProjectStore = Depends(get_project_store)
) -> List[Project]:
    try:
        return project_store.load()
    except WorkflowEngineError as e:
        raise _engine_error(e)


@router.get(
    "/projects/{project_id}",
    response_model=Project,
    summary="Get a saved project"
)
async def get_project(
    project_id: str,
    project_store: ProjectStore = Depends(get_project_store)
) -> Project:
    try:
        project = project_store.get(project_id)
    except WorkflowEngineError as e:
        raise _engine_error(e)
    if project is None:
        raise _project_not_found(project_id)
    return project


@router.put(
    "/projects/{project_id}",
    response_model=Project,
    summary="Create or replace a project"
)
async def save_project(
    project_id: str,
    project: Project,
    project_store: ProjectStore = Depends(get_project_store)
) -> Project:
    """Save a project under the id in the path."""
    try:
        return project_store.upsert(project.model_copy(update={"id": project_id}))
    except WorkflowEngineError as e:
        raise _engine_error(e)


@router.delete(
    "/projects/{project_id}",
    summary="Delete a project"
)
async def delete_project(
    project_id: str,
    project_store: ProjectStore = Depends(get_project_store)
) -> Dict[str, Any]:
    try:
        deleted = project_store.delete(project_id)
    except WorkflowEngineError as e:
        raise _engine_error(e)
    if not deleted:
        raise _project_not_found(project_id)
    return {"message": f"Project '{project_id}' deleted successfully", "project_id": project_id}


@router.post(
    "/projects/{project_id}/nodes",
    response_model=CreateNodeResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add a child node to a project workflow"
)
async def create_node(
    project_id: str,
    request: CreateNodeRequest,
    graph_manager: GraphManager = Depends(get_graph_manager),
    project_store: ProjectStore = Depends(get_project_store)
) -> CreateNodeResponse:
    """
    Add a node linked from ``parent_id`` and save the project.

    Raises:
        HTTPException: 404 if the project or parent node is missing,
            422 if the config overrides are invalid
    """
    try:
        project = project_store.get(project_id)
        if project is None:
            raise _project_not_found(project_id)

        workflow, node = graph_manager.create_node(
            project.to_workflow(), request.parent_id, request.label, request.kind, request.config
        )
        saved = project_store.upsert(project.model_copy(update={"nodes": workflow.nodes, "edges": workflow.edges}))
        return CreateNodeResponse(node=node, project=saved)

    except HTTPException:
        raise
    except ValidationError as e:
        raise _validation_failed(e)
    except WorkflowEngineError as e:
        logger.warning(f"Failed to create node in project {project_id}: {str(e)}")
        raise _engine_error(e, not_found=True)


@router.patch(
    "/projects/{project_id}/nodes/{node_id}",
    response_model=Project,
    summary="Edit a node of a project workflow"
)
async def update_node(
    project_id: str,
    node_id: str,
    request: UpdateNodeRequest,
    graph_manager: GraphManager = Depends(get_graph_manager),
    project_store: ProjectStore = Depends(get_project_store)
) -> Project:
    """
    Merge label, description and config changes into a node and save the project.

    Raises:
        HTTPException: 404 if the project or node is missing, 422 if the
            merged node is invalid
    """
    try:
        project = project_store.get(project_id)
        if project is None:
            raise _project_not_found(project_id)

        workflow = project.to_workflow()
        existing = workflow.find_node(node_id)
        if existing is None:
            raise GraphValidationError(
                f"Node '{node_id}' not found", workflow_name=workflow.name
            ).add_context(node_id=node_id)

        data = existing.model_dump()
        if request.label is not None:
            data["label"] = request.label
        if request.description is not None:
            data["description"] = request.description
        if request.config:
            data["config"] = {**data["config"], **request.config, "kind": existing.kind.value}

        workflow = graph_manager.update_node(workflow, NodeDefinition.model_validate(data))
        return project_store.upsert(project.model_copy(update={"nodes": workflow.nodes, "edges": workflow.edges}))

    except HTTPException:
        raise
    except ValidationError as e:
        raise _validation_failed(e)
    except WorkflowEngineError as e:
        logger.warning(f"Failed to update node {node_id} in project {project_id}: {str(e)}")
        raise _engine_error(e, not_found=True)


@router.get(
    "/tools",
    summary="List registered tools"
)
async def list_tools(
    tool_registry: ToolRegistry = Depends(get_tool_registry)
) -> Dict[str, Any]:
    tools = tool_registry.list_tools()
    return {"tools": tools, "count": len(tools)}
