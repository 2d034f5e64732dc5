"""
PostgreSQL repository for workflows, executions and webhook subscriptions.
"""

import logging
import json
import uuid
from typing import Optional, List, Any
import asyncpg

from ..errors import NotFoundError
from ..models.execution import Execution, ExecutionStatus
from ..models.workflow import Edge, Node, WebhookSubscription, Workflow
from .base import ExecutionRepository

logger = logging.getLogger(__name__)


def _load_json(value: Any) -> Any:
    """asyncpg hands JSONB back as text unless a codec is registered."""
    if isinstance(value, str):
        return json.loads(value)
    return value


class WorkflowRepository(ExecutionRepository):
    """
    Repository for workflow data persistence.

    Handles CRUD operations for:
    - Workflow definitions
    - Workflow executions
    - Webhook subscriptions
    """

    def __init__(self, pool: asyncpg.Pool):
        """
        Initialize repository.

        Args:
            pool: Database connection pool
        """
        self.pool = pool

    async def init_tables(self):
        """Initialize database tables."""
        async with self.pool.acquire() as conn:
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS workflows (
                    id VARCHAR(64) PRIMARY KEY,
                    user_id VARCHAR(255),
                    name VARCHAR(255) NOT NULL,
                    description TEXT,
                    nodes JSONB NOT NULL DEFAULT '[]'::JSONB,
                    edges JSONB NOT NULL DEFAULT '[]'::JSONB,
                    is_active BOOLEAN DEFAULT TRUE,
                    created_at TIMESTAMPTZ DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMPTZ DEFAULT CURRENT_TIMESTAMP
                )
            """)

            await conn.execute("""
                CREATE TABLE IF NOT EXISTS workflow_executions (
                    id VARCHAR(64) PRIMARY KEY,
                    workflow_id VARCHAR(64) REFERENCES workflows(id) ON DELETE CASCADE,
                    user_id VARCHAR(255),
                    status VARCHAR(20) NOT NULL
                        CHECK (status IN ('pending', 'running', 'completed', 'failed')),
                    input JSONB,
                    result JSONB,
                    error TEXT,
                    current_node_id VARCHAR(255),
                    warnings JSONB NOT NULL DEFAULT '[]'::JSONB,
                    started_at TIMESTAMPTZ DEFAULT CURRENT_TIMESTAMP,
                    completed_at TIMESTAMPTZ
                )
            """)

            await conn.execute("""
                CREATE TABLE IF NOT EXISTS webhook_subscriptions (
                    id VARCHAR(64) PRIMARY KEY,
                    workflow_id VARCHAR(64) REFERENCES workflows(id) ON DELETE CASCADE,
                    user_id VARCHAR(255),
                    event VARCHAR(100) NOT NULL,
                    url TEXT NOT NULL,
                    created_at TIMESTAMPTZ DEFAULT CURRENT_TIMESTAMP
                )
            """)

            await conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_executions_workflow "
                "ON workflow_executions(workflow_id, started_at DESC)"
            )
            await conn.execute("CREATE INDEX IF NOT EXISTS idx_executions_status ON workflow_executions(status)")
            await conn.execute("CREATE INDEX IF NOT EXISTS idx_webhooks_workflow ON webhook_subscriptions(workflow_id)")

            logger.info("Workflow tables initialized")

    # Workflows

    async def create_workflow(self, workflow: Workflow) -> Workflow:
        """Create a new workflow definition."""
        workflow_id = workflow.id or str(uuid.uuid4())
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow("""
                INSERT INTO workflows (id, user_id, name, description, nodes, edges, is_active)
                VALUES ($1, $2, $3, $4, $5, $6, $7)
                RETURNING *
            """,
                workflow_id,
                workflow.user_id,
                workflow.name,
                workflow.description,
                json.dumps([n.model_dump(by_alias=True, mode="json") for n in workflow.nodes]),
                json.dumps([e.model_dump(by_alias=True, mode="json") for e in workflow.edges]),
                workflow.is_active,
            )
            return self._row_to_workflow(row)

    async def get_workflow(self, workflow_id: str, user_id: Optional[str] = None) -> Workflow:
        """Get a workflow by ID, optionally restricted to its owner."""
        query = "SELECT * FROM workflows WHERE id = $1"
        params = [workflow_id]
        if user_id:
            query += " AND user_id = $2"
            params.append(user_id)

        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(query, *params)

        if not row:
            raise NotFoundError(f"Workflow not found: {workflow_id}", resource="workflow")
        return self._row_to_workflow(row)

    def _row_to_workflow(self, row) -> Workflow:
        """Convert database row to Workflow."""
        return Workflow(
            id=row["id"],
            user_id=row["user_id"],
            name=row["name"],
            description=row["description"],
            nodes=[Node(**n) for n in _load_json(row["nodes"]) or []],
            edges=[Edge(**e) for e in _load_json(row["edges"]) or []],
            is_active=row["is_active"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    # Workflow Executions

    async def insert_execution(self, execution: Execution) -> Execution:
        """Create a new execution record."""
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow("""
                INSERT INTO workflow_executions
                (id, workflow_id, user_id, status, input, warnings, started_at)
                VALUES ($1, $2, $3, $4, $5, $6, $7)
                RETURNING *
            """,
                execution.id,
                execution.workflow_id,
                execution.user_id,
                ExecutionStatus(execution.status).value,
                json.dumps(execution.input, default=str),
                json.dumps(execution.warnings),
                execution.started_at,
            )
            return self._row_to_execution(row)

    async def update_execution(self, execution: Execution) -> bool:
        """Overwrite status, result, error, progress and completion time."""
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow("""
                UPDATE workflow_executions
                SET status = $1, result = $2, error = $3, current_node_id = $4,
                    warnings = $5, completed_at = COALESCE(completed_at, $6)
                WHERE id = $7
                RETURNING id
            """,
                ExecutionStatus(execution.status).value,
                json.dumps(execution.result, default=str) if execution.result is not None else None,
                execution.error,
                execution.current_node_id,
                json.dumps(execution.warnings),
                execution.completed_at,
                execution.id,
            )
            return row is not None

    async def get_execution(self, execution_id: str) -> Optional[Execution]:
        """Get an execution by ID."""
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                "SELECT * FROM workflow_executions WHERE id = $1",
                execution_id
            )
            if row:
                return self._row_to_execution(row)
            return None

    async def list_executions(self, workflow_id: str, limit: int = 100) -> List[Execution]:
        """List executions of a workflow, newest first."""
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                "SELECT * FROM workflow_executions WHERE workflow_id = $1 "
                "ORDER BY started_at DESC LIMIT $2",
                workflow_id,
                limit,
            )
            return [self._row_to_execution(row) for row in rows]

    def _row_to_execution(self, row) -> Execution:
        """Convert database row to Execution."""
        return Execution(
            id=row["id"],
            workflow_id=row["workflow_id"],
            user_id=row["user_id"],
            status=ExecutionStatus(row["status"]),
            input=_load_json(row["input"]),
            result=_load_json(row["result"]),
            error=row["error"],
            current_node_id=row["current_node_id"],
            warnings=_load_json(row["warnings"]) or [],
            started_at=row["started_at"],
            completed_at=row["completed_at"],
        )

    # Webhook Subscriptions

    async def create_webhook(self, subscription: WebhookSubscription) -> WebhookSubscription:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow("""
                INSERT INTO webhook_subscriptions (id, workflow_id, user_id, event, url)
                VALUES ($1, $2, $3, $4, $5)
                RETURNING *
            """,
                subscription.id or str(uuid.uuid4()),
                subscription.workflow_id,
                subscription.user_id,
                subscription.event,
                subscription.url,
            )
            return WebhookSubscription(**dict(row))

    async def list_webhooks(self, workflow_id: str) -> List[WebhookSubscription]:
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                "SELECT * FROM webhook_subscriptions WHERE workflow_id = $1 ORDER BY created_at",
                workflow_id,
            )
            return [WebhookSubscription(**dict(row)) for row in rows]

    async def delete_webhook(self, webhook_id: str, user_id: Optional[str] = None) -> bool:
        query = "DELETE FROM webhook_subscriptions WHERE id = $1"
        params = [webhook_id]
        if user_id:
            query += " AND user_id = $2"
            params.append(user_id)

        async with self.pool.acquire() as conn:
            status = await conn.execute(query, *params)
        return status.endswith(" 1")
