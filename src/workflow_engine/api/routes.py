"""
REST API routes for workflow engine.
"""

import logging
from typing import Any, List, Optional

from fastapi import APIRouter, HTTPException, Query, Request
from pydantic import BaseModel, Field

from ..errors import InvalidGraphError, NotFoundError, WorkflowEngineError
from ..graphs.base import validate
from ..manager import WorkflowManager
from ..models.execution import ExecutionSummary, ExecutionView
from ..models.workflow import ValidationResult, WebhookSubscription, Workflow
from ..tools.agents import list_agents

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["workflows"])


class ExecutionRequest(BaseModel):
    """Body for starting an execution."""
    input: Any = Field(default_factory=dict, description="Input data for the workflow")
    user_id: Optional[str] = None
    timeout_seconds: Optional[float] = Field(default=None, gt=0, description="Execution timeout")


class ExecutionStarted(BaseModel):
    execution_id: str
    status: str


class WebhookRequest(BaseModel):
    url: str
    event: str = "workflow.completed"
    user_id: Optional[str] = None


def get_manager(request: Request) -> WorkflowManager:
    manager = getattr(request.app.state, "manager", None)
    if manager is None:
        raise HTTPException(status_code=503, detail="Service not ready")
    return manager


def to_http_error(error: WorkflowEngineError) -> HTTPException:
    if isinstance(error, NotFoundError):
        return HTTPException(status_code=404, detail=error.message)
    if isinstance(error, InvalidGraphError):
        return HTTPException(
            status_code=422,
            detail={"message": error.message, "violations": error.violations},
        )
    return HTTPException(status_code=400, detail=error.message)


# Agents

@router.get("/agents")
async def get_agents():
    """List the available agent types."""
    return {"agents": list_agents()}


# Workflows

@router.post("/workflows/validate", response_model=ValidationResult)
async def validate_workflow(workflow: Workflow):
    """Validate a workflow definition without running it."""
    return validate(workflow)


@router.post("/workflows/{workflow_id}/executions", response_model=ExecutionStarted, status_code=202)
async def start_execution(workflow_id: str, body: ExecutionRequest, request: Request):
    """Start a new workflow execution."""
    manager = get_manager(request)
    try:
        execution_id = await manager.start_execution(
            workflow_id,
            body.input,
            user_id=body.user_id,
            timeout_seconds=body.timeout_seconds,
        )
    except WorkflowEngineError as e:
        logger.warning(f"Failed to start execution of {workflow_id}: {e.message}")
        raise to_http_error(e)

    return ExecutionStarted(execution_id=execution_id, status="pending")


@router.get("/workflows/{workflow_id}/executions", response_model=List[ExecutionSummary])
async def list_executions(
    workflow_id: str,
    request: Request,
    limit: int = Query(default=100, ge=1, le=1000),
):
    """List executions of a workflow, newest first."""
    manager = get_manager(request)
    executions = await manager.list_executions(workflow_id, limit=limit)
    return [
        ExecutionSummary(
            id=e.id,
            workflow_id=e.workflow_id,
            status=e.status,
            current_node_id=e.current_node_id,
            error=e.error,
            started_at=e.started_at,
            completed_at=e.completed_at,
        )
        for e in executions
    ]


# Executions

@router.get("/executions/{execution_id}", response_model=ExecutionView)
async def get_execution(execution_id: str, request: Request):
    """Get execution status, result and live progress."""
    manager = get_manager(request)
    try:
        return await manager.get_execution(execution_id)
    except WorkflowEngineError as e:
        raise to_http_error(e)


@router.post("/executions/{execution_id}/cancel")
async def cancel_execution(execution_id: str, request: Request):
    """Cancel a running execution."""
    manager = get_manager(request)
    try:
        signalled = await manager.cancel_execution(execution_id)
    except WorkflowEngineError as e:
        raise to_http_error(e)

    return {"execution_id": execution_id, "cancelled": signalled}


# Webhooks

@router.post("/workflows/{workflow_id}/webhooks", response_model=WebhookSubscription, status_code=201)
async def register_webhook(workflow_id: str, body: WebhookRequest, request: Request):
    """Register a webhook for workflow events."""
    manager = get_manager(request)
    try:
        await manager.repository.get_workflow(workflow_id)
    except WorkflowEngineError as e:
        raise to_http_error(e)

    return await manager.repository.create_webhook(WebhookSubscription(
        workflow_id=workflow_id,
        user_id=body.user_id,
        event=body.event,
        url=body.url,
    ))


@router.get("/workflows/{workflow_id}/webhooks", response_model=List[WebhookSubscription])
async def list_webhooks(workflow_id: str, request: Request):
    manager = get_manager(request)
    return await manager.repository.list_webhooks(workflow_id)


@router.delete("/webhooks/{webhook_id}")
async def delete_webhook(webhook_id: str, request: Request, user_id: Optional[str] = None):
    manager = get_manager(request)
    if not await manager.repository.delete_webhook(webhook_id, user_id=user_id):
        raise HTTPException(status_code=404, detail="Webhook not found")
    return {"id": webhook_id, "deleted": True}
