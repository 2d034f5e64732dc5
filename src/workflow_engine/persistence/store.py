"""
Execution state persistence: durable record plus ephemeral progress mirror.
"""

import asyncio
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from ..errors import InvalidTransitionError, NotFoundError
from ..models.execution import Execution, ExecutionState, ExecutionStatus
from .base import ExecutionRepository, StateCache

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS = {
    ExecutionStatus.PENDING: {ExecutionStatus.PENDING, ExecutionStatus.RUNNING, ExecutionStatus.FAILED},
    ExecutionStatus.RUNNING: {ExecutionStatus.RUNNING, ExecutionStatus.COMPLETED, ExecutionStatus.FAILED},
}


def state_key(execution_id: str) -> str:
    return f"execution:{execution_id}:state"


class ExecutionStore:
    """
    Adapter the coordinator persists through.

    Writes for one execution are serialized by a per-execution lock;
    different executions never contend.
    """

    def __init__(
        self,
        repository: ExecutionRepository,
        cache: StateCache,
        state_ttl_seconds: int = 3600,
    ):
        self.repository = repository
        self.cache = cache
        self.state_ttl_seconds = state_ttl_seconds
        self._locks: Dict[str, asyncio.Lock] = {}

    def _lock(self, execution_id: str) -> asyncio.Lock:
        lock = self._locks.get(execution_id)
        if lock is None:
            lock = self._locks[execution_id] = asyncio.Lock()
        return lock

    def release(self, execution_id: str):
        """Drop the write lock of a finished execution."""
        self._locks.pop(execution_id, None)

    async def create_execution(
        self,
        workflow_id: str,
        input_data: Any,
        user_id: Optional[str] = None,
    ) -> Execution:
        """Insert a pending execution and seed its progress state."""
        execution = Execution(
            id=str(uuid.uuid4()),
            workflow_id=workflow_id,
            user_id=user_id,
            status=ExecutionStatus.PENDING,
            input=input_data,
            started_at=datetime.now(timezone.utc),
        )
        execution = await self.repository.insert_execution(execution)

        await self.save_execution_state(ExecutionState(
            execution_id=execution.id,
            workflow_id=workflow_id,
            status=ExecutionStatus.PENDING,
            input=input_data,
        ))

        logger.info(f"Created execution {execution.id} for workflow {workflow_id}")
        return execution

    async def update_execution_status(
        self,
        execution_id: str,
        status: ExecutionStatus,
        result: Any = None,
        error: Optional[str] = None,
        current_node_id: Optional[str] = None,
        warnings: Optional[List[str]] = None,
    ) -> Execution:
        """
        Overwrite the durable status of an execution.

        Repeating a call is harmless. Once an execution is terminal, a
        repeat of the same status is a no-op and any other status is
        rejected.

        Raises:
            NotFoundError: If the execution id is unknown
            InvalidTransitionError: If the status change is not allowed
        """
        status = ExecutionStatus(status)

        async with self._lock(execution_id):
            current = await self.repository.get_execution(execution_id)
            if current is None:
                raise NotFoundError(f"Execution not found: {execution_id}", resource="execution")

            if current.status.is_terminal:
                if status == current.status:
                    return current
                raise InvalidTransitionError(
                    f"Execution {execution_id} is already {current.status.value}; "
                    f"cannot move to {status.value}"
                )

            if status not in ALLOWED_TRANSITIONS[current.status]:
                raise InvalidTransitionError(
                    f"Execution {execution_id} cannot move from {current.status.value} to {status.value}"
                )

            updated = current.model_copy(update={
                "status": status,
                "result": result if result is not None else current.result,
                "error": error if error is not None else current.error,
                "current_node_id": current_node_id or current.current_node_id,
                "warnings": list(warnings) if warnings is not None else current.warnings,
                "completed_at": datetime.now(timezone.utc) if status.is_terminal else None,
            })

            if not await self.repository.update_execution(updated):
                raise NotFoundError(f"Execution not found: {execution_id}", resource="execution")

            return updated

    async def save_execution_state(self, state: ExecutionState):
        """Write the progress snapshot; expires after the retention window."""
        async with self._lock(state.execution_id):
            state.updated_at = datetime.now(timezone.utc)
            await self.cache.set(
                state_key(state.execution_id),
                state.model_dump_json(),
                self.state_ttl_seconds,
            )

    async def discard_execution_state(self, execution_id: str):
        """Drop the progress snapshot so readers fall back to the durable record."""
        await self.cache.delete(state_key(execution_id))

    async def get_execution_state(self, execution_id: str) -> Optional[ExecutionState]:
        """
        Read the progress snapshot.

        None means the retention window elapsed (or nothing was written);
        the durable record is then the only source.
        """
        raw = await self.cache.get(state_key(execution_id))
        if raw is None:
            return None
        return ExecutionState.model_validate_json(raw)

    async def get_execution(self, execution_id: str) -> Execution:
        execution = await self.repository.get_execution(execution_id)
        if execution is None:
            raise NotFoundError(f"Execution not found: {execution_id}", resource="execution")
        return execution

    async def list_executions(self, workflow_id: str, limit: int = 100) -> List[Execution]:
        return await self.repository.list_executions(workflow_id, limit=limit)
