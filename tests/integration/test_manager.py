"""
Integration tests for background execution through the workflow manager.
"""
import asyncio

import pytest

from workflow_engine.errors import InvalidGraphError, NotFoundError
from workflow_engine.manager import WorkflowManager
from workflow_engine.models.execution import ExecutionStatus


async def wait_until(predicate, timeout: float = 2.0):
    """Poll an async predicate until it holds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while loop.time() < deadline:
        if await predicate():
            return
        await asyncio.sleep(0.01)
    raise AssertionError("Condition not reached in time")


@pytest.fixture
def gate():
    return asyncio.Event()


@pytest.fixture
def gated_manager(repository, store, make_agent, make_coordinator, gate):
    """Manager whose agent nodes block until the gate opens."""
    async def wait_for_gate(config, prompt):
        await gate.wait()

    coordinator = make_coordinator(make_agent(reply="gated reply", before_reply=wait_for_gate))
    return WorkflowManager(repository, store, coordinator)


class TestStartExecution:
    """Test starting executions in the background."""

    @pytest.mark.asyncio
    async def test_returns_before_completion(self, manager, repository, summarize_workflow):
        await repository.create_workflow(summarize_workflow)

        execution_id = await manager.start_execution("wf-summarize", {"topic": "bees"}, user_id="user-1")

        view = await manager.get_execution(execution_id)
        assert view.status in (ExecutionStatus.PENDING, ExecutionStatus.RUNNING)

        execution = await manager.wait_for_execution(execution_id, timeout=5)
        assert execution.status == ExecutionStatus.COMPLETED
        assert execution.result == "agent reply"
        assert not manager.is_running(execution_id)

    @pytest.mark.asyncio
    async def test_view_includes_progress(self, manager, repository, summarize_workflow):
        await repository.create_workflow(summarize_workflow)
        execution_id = await manager.start_execution("wf-summarize", {"topic": "bees"})
        await manager.wait_for_execution(execution_id, timeout=5)

        view = await manager.get_execution(execution_id)

        assert view.status == ExecutionStatus.COMPLETED
        assert view.completed_at is not None
        assert list(view.state.node_results) == ["T", "A", "O"]

    @pytest.mark.asyncio
    async def test_unknown_workflow(self, manager):
        with pytest.raises(NotFoundError):
            await manager.start_execution("missing", {})

    @pytest.mark.asyncio
    async def test_other_users_workflow_is_hidden(self, manager, repository, summarize_workflow):
        await repository.create_workflow(summarize_workflow)
        with pytest.raises(NotFoundError):
            await manager.start_execution("wf-summarize", {}, user_id="intruder")

    @pytest.mark.asyncio
    async def test_invalid_workflow_creates_no_record(self, manager, repository, workflow_factory):
        await repository.create_workflow(workflow_factory(
            workflow_id="wf-broken",
            nodes=[{"id": "out", "type": "output", "data": {}}],
            edges=[],
        ))

        with pytest.raises(InvalidGraphError):
            await manager.start_execution("wf-broken", {})

        assert repository.executions == {}

    @pytest.mark.asyncio
    async def test_list_executions(self, manager, repository, branching_workflow):
        await repository.create_workflow(branching_workflow)
        first = await manager.start_execution("wf-branch", {"score": 1})
        second = await manager.start_execution("wf-branch", {"score": 0})
        await manager.wait_for_execution(first, timeout=5)
        await manager.wait_for_execution(second, timeout=5)

        executions = await manager.list_executions("wf-branch")

        assert {e.id for e in executions} == {first, second}
        assert {e.result for e in executions} == {"high 1", "low 0"}


class TestCancelExecution:
    """Test cancellation of running executions."""

    @pytest.mark.asyncio
    async def test_cancel_after_second_node(self, gated_manager, repository, store, gate, linear_workflow):
        await repository.create_workflow(linear_workflow)
        execution_id = await gated_manager.start_execution("wf-1", [1, 2])

        async def at_agent_node():
            state = await store.get_execution_state(execution_id)
            return state is not None and state.current_node_id == "writer"

        await wait_until(at_agent_node)

        assert await gated_manager.cancel_execution(execution_id) is True
        gate.set()
        execution = await gated_manager.wait_for_execution(execution_id, timeout=5)

        assert execution.status == ExecutionStatus.FAILED
        assert execution.error.startswith("ExecutionCancelledError: ")
        state = await store.get_execution_state(execution_id)
        assert list(state.node_results) == ["trigger", "double"]
        assert state.status == ExecutionStatus.FAILED

    @pytest.mark.asyncio
    async def test_cancel_finished_execution(self, manager, repository, summarize_workflow):
        await repository.create_workflow(summarize_workflow)
        execution_id = await manager.start_execution("wf-summarize", {"topic": "x"})
        await manager.wait_for_execution(execution_id, timeout=5)

        assert await manager.cancel_execution(execution_id) is False
        assert (await manager.get_execution(execution_id)).status == ExecutionStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_cancel_unknown_execution(self, manager):
        with pytest.raises(NotFoundError):
            await manager.cancel_execution("missing")

    @pytest.mark.asyncio
    async def test_shutdown_fails_stuck_executions(self, gated_manager, repository, store, linear_workflow):
        await repository.create_workflow(linear_workflow)
        execution_id = await gated_manager.start_execution("wf-1", [1])

        async def at_agent_node():
            state = await store.get_execution_state(execution_id)
            return state is not None and state.current_node_id == "writer"

        await wait_until(at_agent_node)
        await gated_manager.shutdown(timeout=0.1)

        execution = await store.get_execution(execution_id)
        assert execution.status == ExecutionStatus.FAILED
        assert execution.error.startswith("ExecutionCancelledError: ")
        assert not gated_manager.is_running(execution_id)
        assert execution_id not in store._locks
