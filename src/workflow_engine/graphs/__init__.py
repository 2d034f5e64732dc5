"""
Workflow graph model, traversal rules and node handlers.
"""

from .base import WorkflowGraph, validate, ensure_valid
from .edges import next_edge, branch_label
from .nodes import NodeContext, NODE_HANDLERS, get_handler

__all__ = [
    "WorkflowGraph",
    "validate",
    "ensure_valid",
    "next_edge",
    "branch_label",
    "NodeContext",
    "NODE_HANDLERS",
    "get_handler",
]
