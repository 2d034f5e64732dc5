"""
Workflow engine error types.
"""

from typing import List, Optional


class WorkflowEngineError(Exception):
    """Base exception for workflow engine errors."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class InvalidGraphError(WorkflowEngineError):
    """Raised when a workflow graph is structurally invalid."""

    def __init__(self, message: str, violations: Optional[List[str]] = None):
        super().__init__(message)
        self.violations = violations or [message]


class AgentExecutionError(WorkflowEngineError):
    """Raised when the agent executor fails or times out."""

    def __init__(self, message: str, agent_id: Optional[str] = None):
        super().__init__(message)
        self.agent_id = agent_id


class ExpressionError(WorkflowEngineError):
    """Raised when a sandboxed expression is rejected or fails to evaluate."""
    pass


class ConditionEvaluationError(WorkflowEngineError):
    """Raised when a condition node cannot evaluate its expression."""

    def __init__(self, message: str, node_id: Optional[str] = None):
        super().__init__(message)
        self.node_id = node_id


class GraphCycleError(WorkflowEngineError):
    """Raised when an execution exceeds the configured step ceiling."""

    def __init__(self, message: str, steps: Optional[int] = None):
        super().__init__(message)
        self.steps = steps


class ExecutionCancelledError(WorkflowEngineError):
    """Raised when an execution is cancelled or runs out of time."""

    def __init__(self, message: str, reason: str = "cancelled"):
        super().__init__(message)
        self.reason = reason


class NotFoundError(WorkflowEngineError):
    """Raised when a workflow, execution or webhook id is unknown."""

    def __init__(self, message: str, resource: Optional[str] = None):
        super().__init__(message)
        self.resource = resource


class InvalidTransitionError(WorkflowEngineError):
    """Raised when a terminal execution would move to a different status."""
    pass
