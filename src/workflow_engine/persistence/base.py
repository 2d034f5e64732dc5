"""
Collaborator interfaces for durable and ephemeral persistence.

Production wiring uses the Postgres repository and the Redis state
cache; tests construct the in-memory implementations instead.
"""

from abc import ABC, abstractmethod
from typing import List, Optional

from ..models.execution import Execution
from ..models.workflow import WebhookSubscription, Workflow


class ExecutionRepository(ABC):
    """Durable system of record for workflows, executions and webhooks."""

    async def init_tables(self):
        """Create backing tables if the store needs them."""

    # Workflows

    @abstractmethod
    async def create_workflow(self, workflow: Workflow) -> Workflow:
        ...

    @abstractmethod
    async def get_workflow(self, workflow_id: str, user_id: Optional[str] = None) -> Workflow:
        """Return the workflow or raise NotFoundError."""

    # Executions

    @abstractmethod
    async def insert_execution(self, execution: Execution) -> Execution:
        ...

    @abstractmethod
    async def update_execution(self, execution: Execution) -> bool:
        """Overwrite the mutable fields of an execution; False if the id is unknown."""

    @abstractmethod
    async def get_execution(self, execution_id: str) -> Optional[Execution]:
        ...

    @abstractmethod
    async def list_executions(self, workflow_id: str, limit: int = 100) -> List[Execution]:
        """Executions of a workflow, most recently started first."""

    # Webhooks

    @abstractmethod
    async def create_webhook(self, subscription: WebhookSubscription) -> WebhookSubscription:
        ...

    @abstractmethod
    async def list_webhooks(self, workflow_id: str) -> List[WebhookSubscription]:
        ...

    @abstractmethod
    async def delete_webhook(self, webhook_id: str, user_id: Optional[str] = None) -> bool:
        ...


class StateCache(ABC):
    """Key-value store with per-key expiry."""

    @abstractmethod
    async def set(self, key: str, value: str, ttl_seconds: int):
        ...

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        ...

    @abstractmethod
    async def delete(self, key: str):
        ...

    async def close(self):
        """Release connections."""
