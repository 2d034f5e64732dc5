"""
Workflow execution tracking models.
"""

from typing import Optional, List, Dict, Any
from enum import Enum
from datetime import datetime
from pydantic import BaseModel, Field


class ExecutionStatus(str, Enum):
    """Workflow execution status."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({ExecutionStatus.COMPLETED, ExecutionStatus.FAILED})


class Execution(BaseModel):
    """Durable execution record (system of record)."""
    id: str
    workflow_id: str
    user_id: Optional[str] = None
    status: ExecutionStatus = ExecutionStatus.PENDING
    input: Any = None
    result: Any = None
    error: Optional[str] = None
    current_node_id: Optional[str] = None
    warnings: List[str] = Field(default_factory=list)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class ExecutionState(BaseModel):
    """
    Ephemeral progress snapshot of an execution.

    Mirrors the durable record and adds the node currently being
    visited plus every node result gathered so far, in traversal order.
    """
    execution_id: str
    workflow_id: str
    status: ExecutionStatus = ExecutionStatus.PENDING
    current_node_id: Optional[str] = None
    input: Any = None
    node_results: Dict[str, Any] = Field(default_factory=dict)
    result: Any = None
    error: Optional[str] = None
    warnings: List[str] = Field(default_factory=list)
    updated_at: Optional[datetime] = None


class ExecutionView(BaseModel):
    """What a polling client sees for an execution."""
    id: str
    workflow_id: str
    status: ExecutionStatus
    result: Any = None
    error: Optional[str] = None
    warnings: List[str] = Field(default_factory=list)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    state: Optional[ExecutionState] = None


class ExecutionSummary(BaseModel):
    """Summary of an execution for list views."""
    id: str
    workflow_id: str
    status: ExecutionStatus
    current_node_id: Optional[str] = None
    error: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
