"""
In-memory collaborators for tests and local runs.
"""

import time
import uuid
from typing import Callable, Dict, List, Optional, Tuple

from ..errors import NotFoundError
from ..models.execution import Execution
from ..models.workflow import WebhookSubscription, Workflow
from .base import ExecutionRepository, StateCache


class InMemoryRepository(ExecutionRepository):
    """Dict-backed ExecutionRepository. Stored models are copied in and out."""

    def __init__(self):
        self.workflows: Dict[str, Workflow] = {}
        self.executions: Dict[str, Execution] = {}
        self.webhooks: Dict[str, WebhookSubscription] = {}

    async def create_workflow(self, workflow: Workflow) -> Workflow:
        stored = workflow.model_copy(update={"id": workflow.id or str(uuid.uuid4())}, deep=True)
        self.workflows[stored.id] = stored
        return stored.model_copy(deep=True)

    async def get_workflow(self, workflow_id: str, user_id: Optional[str] = None) -> Workflow:
        workflow = self.workflows.get(workflow_id)
        if workflow is None or (user_id and workflow.user_id != user_id):
            raise NotFoundError(f"Workflow not found: {workflow_id}", resource="workflow")
        return workflow.model_copy(deep=True)

    async def insert_execution(self, execution: Execution) -> Execution:
        self.executions[execution.id] = execution.model_copy(deep=True)
        return execution.model_copy(deep=True)

    async def update_execution(self, execution: Execution) -> bool:
        current = self.executions.get(execution.id)
        if current is None:
            return False
        self.executions[execution.id] = execution.model_copy(
            update={"completed_at": current.completed_at or execution.completed_at},
            deep=True,
        )
        return True

    async def get_execution(self, execution_id: str) -> Optional[Execution]:
        execution = self.executions.get(execution_id)
        return execution.model_copy(deep=True) if execution else None

    async def list_executions(self, workflow_id: str, limit: int = 100) -> List[Execution]:
        matching = [e for e in self.executions.values() if e.workflow_id == workflow_id]
        matching.sort(key=lambda e: e.started_at.timestamp() if e.started_at else 0.0, reverse=True)
        return [e.model_copy(deep=True) for e in matching[:limit]]

    async def create_webhook(self, subscription: WebhookSubscription) -> WebhookSubscription:
        stored = subscription.model_copy(update={"id": subscription.id or str(uuid.uuid4())})
        self.webhooks[stored.id] = stored
        return stored

    async def list_webhooks(self, workflow_id: str) -> List[WebhookSubscription]:
        return [w for w in self.webhooks.values() if w.workflow_id == workflow_id]

    async def delete_webhook(self, webhook_id: str, user_id: Optional[str] = None) -> bool:
        webhook = self.webhooks.get(webhook_id)
        if webhook is None or (user_id and webhook.user_id != user_id):
            return False
        del self.webhooks[webhook_id]
        return True


class InMemoryStateCache(StateCache):
    """Dict-backed StateCache honouring per-key TTLs."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._data: Dict[str, Tuple[str, float]] = {}

    async def set(self, key: str, value: str, ttl_seconds: int):
        self._data[key] = (value, self._clock() + ttl_seconds)

    async def get(self, key: str) -> Optional[str]:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self._clock() >= expires_at:
            del self._data[key]
            return None
        return value

    async def delete(self, key: str):
        self._data.pop(key, None)
