"""
Workflow manager: starts executions as background tasks and serves polling.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .coordinator import ExecutionCoordinator, describe_error
from .graphs.base import WorkflowGraph
from .models.execution import Execution, ExecutionStatus, ExecutionView
from .persistence.base import ExecutionRepository
from .persistence.store import ExecutionStore

logger = logging.getLogger(__name__)


@dataclass
class RunHandle:
    """Book-keeping for one in-flight execution."""
    task: asyncio.Task
    cancel_event: asyncio.Event = field(default_factory=asyncio.Event)


class WorkflowManager:
    """Manages workflow execution."""

    def __init__(
        self,
        repository: ExecutionRepository,
        store: ExecutionStore,
        coordinator: ExecutionCoordinator,
    ):
        self.repository = repository
        self.store = store
        self.coordinator = coordinator
        self._running: Dict[str, RunHandle] = {}

    async def start_execution(
        self,
        workflow_id: str,
        input_data: Any,
        user_id: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
    ) -> str:
        """
        Start a new workflow execution and return its id immediately.

        Raises:
            NotFoundError: If the workflow does not exist for this user
            InvalidGraphError: If the workflow fails validation; no
                execution record is created in that case
        """
        workflow = await self.repository.get_workflow(workflow_id, user_id=user_id)
        graph = self.coordinator.prepare(workflow)

        execution = await self.store.create_execution(workflow.id, input_data, user_id=user_id)

        cancel_event = asyncio.Event()
        task = asyncio.create_task(
            self._supervise(graph, execution, cancel_event, timeout_seconds),
            name=f"execution-{execution.id}",
        )
        self._running[execution.id] = RunHandle(task=task, cancel_event=cancel_event)

        return execution.id

    async def _supervise(
        self,
        graph: WorkflowGraph,
        execution: Execution,
        cancel_event: asyncio.Event,
        timeout_seconds: Optional[float],
    ):
        """Run the coordinator; force a failed status if it ever escapes."""
        try:
            await self.coordinator.run(
                graph,
                execution,
                cancel_event=cancel_event,
                timeout_seconds=timeout_seconds,
            )
        except asyncio.CancelledError:
            await self._force_failed(execution.id, "ExecutionCancelledError: Execution task was cancelled")
            raise
        except Exception as e:
            logger.exception(f"Supervisor caught unhandled error for execution {execution.id}")
            await self._force_failed(execution.id, describe_error(e))
        finally:
            self._running.pop(execution.id, None)

    async def _force_failed(self, execution_id: str, error: str):
        try:
            current = await self.store.get_execution(execution_id)
            if ExecutionStatus(current.status).is_terminal:
                return
            await self.store.update_execution_status(execution_id, ExecutionStatus.FAILED, error=error)
        except Exception as e:
            logger.error(f"Could not mark execution {execution_id} as failed: {e}")
        finally:
            self.store.release(execution_id)

    async def get_execution(self, execution_id: str) -> ExecutionView:
        """Durable status plus the live progress snapshot, if still retained."""
        execution = await self.store.get_execution(execution_id)
        state = await self.store.get_execution_state(execution_id)

        return ExecutionView(
            id=execution.id,
            workflow_id=execution.workflow_id,
            status=execution.status,
            result=execution.result,
            error=execution.error,
            warnings=execution.warnings,
            started_at=execution.started_at,
            completed_at=execution.completed_at,
            state=state,
        )

    async def list_executions(self, workflow_id: str, limit: int = 100) -> List[Execution]:
        return await self.store.list_executions(workflow_id, limit=limit)

    async def cancel_execution(self, execution_id: str) -> bool:
        """
        Ask a running execution to stop before its next node.

        Returns:
            True if a running execution was signalled, False if it had
            already finished

        Raises:
            NotFoundError: If the execution id is unknown
        """
        handle = self._running.get(execution_id)
        if handle is None:
            await self.store.get_execution(execution_id)
            return False

        handle.cancel_event.set()
        logger.info(f"Cancellation requested for execution {execution_id}")
        return True

    async def wait_for_execution(self, execution_id: str, timeout: Optional[float] = None) -> Execution:
        """Wait until the execution's task finishes and return the durable record."""
        handle = self._running.get(execution_id)
        if handle is not None:
            await asyncio.wait_for(asyncio.shield(handle.task), timeout=timeout)
        return await self.store.get_execution(execution_id)

    def is_running(self, execution_id: str) -> bool:
        return execution_id in self._running

    async def shutdown(self, timeout: float = 10.0):
        """Signal every in-flight execution to stop and wait for them."""
        handles = list(self._running.values())
        for handle in handles:
            handle.cancel_event.set()
        if not handles:
            return

        done, pending = await asyncio.wait([h.task for h in handles], timeout=timeout)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        logger.info(f"Stopped {len(handles)} executions ({len(pending)} forcibly)")
