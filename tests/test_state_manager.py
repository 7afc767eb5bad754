"""Tests for the run registry."""

import asyncio
from datetime import datetime, timedelta

import pytest

from roadmapflow.core.exceptions import RunConflictError, RunNotFoundError
from roadmapflow.core.execution_engine import WorkflowExecutor
from roadmapflow.core.generation_client import GenerationClient
from roadmapflow.core.state_manager import StateManager
from roadmapflow.models.core import NodeStatus, RunStatus

from .helpers import FakeProvider, agent_node, chain, end_node, trigger_node


def make_state_manager(provider: FakeProvider) -> StateManager:
    client = GenerationClient(provider, retry_base_delay=0.001, retry_max_delay=0.005)
    return StateManager(WorkflowExecutor(client))


def simple_workflow():
    return chain(trigger_node(), agent_node("agent", "{{userInput}}", "out"), end_node())


class TestStateManager:
    """Test cases for StateManager component."""

    @pytest.mark.asyncio
    async def test_run_to_completion(self):
        manager = make_state_manager(FakeProvider(["answer"]))
        record = manager.start_run("session-1", simple_workflow(), initial_input="hello")

        result = await manager.wait_for_run(record.run_id)

        assert result.status == RunStatus.COMPLETED
        assert result.final_output == "answer"
        assert record.status == RunStatus.COMPLETED
        assert record.completed_at is not None
        assert [entry.status for entry in manager.get_logs(record.run_id)] == [NodeStatus.SUCCESS] * 3
        assert manager.active_run_for("session-1") is None
        assert record.to_dict()["status"] == "completed"
        assert record.to_dict()["log_count"] == 3

    @pytest.mark.asyncio
    async def test_one_active_run_per_session(self):
        """Test that a second start for the same session is rejected."""
        manager = make_state_manager(FakeProvider(delay=0.2))
        first = manager.start_run("session-1", simple_workflow())

        with pytest.raises(RunConflictError) as exc_info:
            manager.start_run("session-1", simple_workflow())
        assert exc_info.value.context["run_id"] == first.run_id

        other = manager.start_run("session-2", simple_workflow())
        assert sorted(manager.get_active_runs()) == sorted([first.run_id, other.run_id])

        await manager.wait_for_run(first.run_id)
        again = manager.start_run("session-1", simple_workflow())
        await manager.shutdown()
        assert again.run_id != first.run_id

    @pytest.mark.asyncio
    async def test_logs_are_visible_while_running(self):
        manager = make_state_manager(FakeProvider(delay=0.5))
        record = manager.start_run("session-1", simple_workflow())

        await asyncio.sleep(0.05)
        logs = manager.get_logs(record.run_id)

        assert [(entry.node_id, entry.status) for entry in logs] == [
            ("trigger", NodeStatus.SUCCESS),
            ("agent", NodeStatus.RUNNING),
        ]
        logs[0].output = "tampered"
        assert manager.get_logs(record.run_id)[0].output != "tampered"
        await manager.shutdown()

    @pytest.mark.asyncio
    async def test_cancel_run(self):
        manager = make_state_manager(FakeProvider(delay=5.0))
        record = manager.start_run("session-1", simple_workflow())
        await asyncio.sleep(0.02)

        assert manager.cancel_run(record.run_id) is True
        result = await manager.wait_for_run(record.run_id)

        assert result.status == RunStatus.CANCELLED
        assert record.status == RunStatus.CANCELLED
        assert manager.cancel_run(record.run_id) is False

    @pytest.mark.asyncio
    async def test_completion_callback_receives_result(self):
        received = []

        async def on_complete(result):
            received.append(result)

        manager = make_state_manager(FakeProvider())
        record = manager.start_run("session-1", simple_workflow(), on_complete=on_complete)
        await manager.wait_for_run(record.run_id)

        assert len(received) == 1
        assert received[0].run_id == record.run_id

    @pytest.mark.asyncio
    async def test_failing_callback_does_not_fail_the_run(self):
        def on_complete(result):
            raise RuntimeError("store offline")

        manager = make_state_manager(FakeProvider())
        record = manager.start_run("session-1", simple_workflow(), on_complete=on_complete)
        result = await manager.wait_for_run(record.run_id)

        assert result.status == RunStatus.COMPLETED

    def test_unknown_run(self):
        manager = make_state_manager(FakeProvider())
        with pytest.raises(RunNotFoundError):
            manager.get_run("missing")
        with pytest.raises(RunNotFoundError):
            manager.cancel_run("missing")

    @pytest.mark.asyncio
    async def test_cleanup_removes_old_finished_runs(self):
        manager = make_state_manager(FakeProvider())
        record = manager.start_run("session-1", simple_workflow())
        await manager.wait_for_run(record.run_id)

        assert manager.cleanup_completed_runs(max_age_hours=1) == 0
        record.completed_at = datetime.utcnow() - timedelta(hours=2)
        assert manager.cleanup_completed_runs(max_age_hours=1) == 1
        with pytest.raises(RunNotFoundError):
            manager.get_run(record.run_id)

    @pytest.mark.asyncio
    async def test_shutdown_cancels_active_runs(self):
        manager = make_state_manager(FakeProvider(delay=5.0))
        record = manager.start_run("session-1", simple_workflow())
        await asyncio.sleep(0.02)

        await manager.shutdown()

        assert record.status == RunStatus.CANCELLED
        assert manager.get_active_runs() == []

    def test_logs_of_unknown_run(self):
        manager = make_state_manager(FakeProvider())
        with pytest.raises(RunNotFoundError):
            manager.get_logs("missing")
