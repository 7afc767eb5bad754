"""Run registry: tracks workflow runs and enforces one active run per session."""

import asyncio
import inspect
import uuid
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from ..models.core import ExecutionLogEntry, RunResult, RunStatus, WorkflowDefinition
from .cancellation import CancellationToken
from .exceptions import RunConflictError, RunNotFoundError
from .execution_engine import WorkflowExecutor
from .logging import get_logger

logger = get_logger(__name__)

CompletionCallback = Callable[[RunResult], Any]


class RunRecord:
    """Live view of one run as seen by readers."""

    def __init__(self, run_id: str, session_id: str, workflow_name: str):
        self.run_id = run_id
        self.session_id = session_id
        self.workflow_name = workflow_name
        self.status = RunStatus.RUNNING
        self.logs: List[ExecutionLogEntry] = []
        self.result: Optional[RunResult] = None
        self.error: Optional[str] = None
        self.token = CancellationToken()
        self.task: Optional[asyncio.Task] = None
        self.created_at = datetime.utcnow()
        self.completed_at: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        return self.status == RunStatus.RUNNING

    def record_log(self, entry: ExecutionLogEntry):
        """Insert or replace the entry for ``entry.node_id``."""
        for index, existing in enumerate(self.logs):
            if existing.node_id == entry.node_id:
                self.logs[index] = entry
                return
        self.logs.append(entry)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "session_id": self.session_id,
            "workflow_name": self.workflow_name,
            "status": self.status.value,
            "error": self.error,
            "created_at": self.created_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "log_count": len(self.logs),
        }


class StateManager:
    """Starts runs as asyncio tasks and serves their state to readers.

    Readers always get copies of log entries; the executor task is the
    only writer.
    """

    def __init__(self, executor: WorkflowExecutor):
        self.executor = executor
        self._runs: Dict[str, RunRecord] = {}
        self._active_by_session: Dict[str, str] = {}
        logger.info("StateManager initialized")

    def start_run(
        self,
        session_id: str,
        workflow: WorkflowDefinition,
        initial_input: Optional[str] = None,
        on_complete: Optional[CompletionCallback] = None
    ) -> RunRecord:
        """
        Start a run in the background.

        Args:
            session_id: Caller session; at most one active run each
            workflow: Workflow to execute
            initial_input: Overrides the first trigger's text
            on_complete: Called with the RunResult once the run ends

        Returns:
            RunRecord: The new run's record

        Raises:
            RunConflictError: If the session already has an active run
        """
        active_run_id = self._active_by_session.get(session_id)
        if active_run_id and self._runs[active_run_id].is_active:
            raise RunConflictError(session_id, active_run_id)

        run_id = str(uuid.uuid4())
        record = RunRecord(run_id, session_id, workflow.name)
        self._runs[run_id] = record
        self._active_by_session[session_id] = run_id

        record.task = asyncio.create_task(self._run(record, workflow, initial_input, on_complete))
        logger.info(f"Started run {run_id} for session {session_id}")
        return record

    async def _run(
        self,
        record: RunRecord,
        workflow: WorkflowDefinition,
        initial_input: Optional[str],
        on_complete: Optional[CompletionCallback]
    ) -> RunResult:
        try:
            result = await self.executor.execute(
                workflow,
                initial_input=initial_input,
                run_id=record.run_id,
                token=record.token,
                on_log=record.record_log,
            )
        except asyncio.CancelledError:
            record.status = RunStatus.CANCELLED
            record.error = "Execution cancelled"
            raise
        except Exception as e:
            logger.exception(f"Run {record.run_id} crashed: {e}")
            record.status = RunStatus.FAILED
            record.error = str(e)
            raise
        finally:
            record.completed_at = datetime.utcnow()
            if self._active_by_session.get(record.session_id) == record.run_id:
                del self._active_by_session[record.session_id]

        record.result = result
        record.status = result.status
        record.error = result.error

        if on_complete is not None:
            try:
                outcome = on_complete(result)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception as e:
                logger.error(f"Completion callback failed for run {record.run_id}: {e}")
        return result

    def get_run(self, run_id: str) -> RunRecord:
        if run_id not in self._runs:
            raise RunNotFoundError(run_id)
        return self._runs[run_id]

    def get_logs(self, run_id: str) -> List[ExecutionLogEntry]:
        return [entry.model_copy(deep=True) for entry in self.get_run(run_id).logs]

    async def wait_for_run(self, run_id: str) -> RunResult:
        """Wait for a run to finish and return its result."""
        record = self.get_run(run_id)
        if record.task is not None:
            await asyncio.shield(record.task)
        return record.result

    def cancel_run(self, run_id: str) -> bool:
        """Signal cancellation; returns False if the run already ended."""
        record = self.get_run(run_id)
        if not record.is_active:
            return False
        record.token.cancel()
        logger.info(f"Cancellation requested for run {run_id}")
        return True

    def active_run_for(self, session_id: str) -> Optional[str]:
        return self._active_by_session.get(session_id)

    def get_active_runs(self) -> List[str]:
        return [run_id for run_id, record in self._runs.items() if record.is_active]

    def cleanup_completed_runs(self, max_age_hours: int = 24) -> int:
        cutoff = datetime.utcnow() - timedelta(hours=max_age_hours)
        stale = [
            run_id for run_id, record in self._runs.items()
            if not record.is_active and record.completed_at and record.completed_at < cutoff
        ]
        for run_id in stale:
            del self._runs[run_id]
        if stale:
            logger.info(f"Removed {len(stale)} completed runs older than {max_age_hours}h")
        return len(stale)

    async def shutdown(self):
        """Cancel every active run and wait for the tasks to finish."""
        tasks = []
        for record in self._runs.values():
            if record.is_active:
                record.token.cancel()
                if record.task is not None:
                    tasks.append(record.task)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
