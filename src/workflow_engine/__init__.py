"""
Agentic workflow execution engine.
"""

from .coordinator import ExecutionCoordinator
from .manager import WorkflowManager
from .errors import (
    WorkflowEngineError,
    InvalidGraphError,
    AgentExecutionError,
    ConditionEvaluationError,
    GraphCycleError,
    ExecutionCancelledError,
    NotFoundError,
)

__version__ = "1.0.0"

__all__ = [
    "ExecutionCoordinator",
    "WorkflowManager",
    "WorkflowEngineError",
    "InvalidGraphError",
    "AgentExecutionError",
    "ConditionEvaluationError",
    "GraphCycleError",
    "ExecutionCancelledError",
    "NotFoundError",
]
