"""
Workflow Engine data models.
"""

from .workflow import (
    NodeKind,
    OutputFormat,
    BranchLabel,
    Node,
    Edge,
    Workflow,
    ValidationResult,
    WebhookSubscription,
)
from .execution import (
    ExecutionStatus,
    TERMINAL_STATUSES,
    Execution,
    ExecutionState,
    ExecutionView,
    ExecutionSummary,
)

__all__ = [
    "NodeKind",
    "OutputFormat",
    "BranchLabel",
    "Node",
    "Edge",
    "Workflow",
    "ValidationResult",
    "WebhookSubscription",
    "ExecutionStatus",
    "TERMINAL_STATUSES",
    "Execution",
    "ExecutionState",
    "ExecutionView",
    "ExecutionSummary",
]
