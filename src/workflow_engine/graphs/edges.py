"""
Edge selection for workflow traversal.
"""

from typing import Optional

from ..errors import InvalidGraphError
from ..models.workflow import BranchLabel, Edge, Node, NodeKind
from .base import WorkflowGraph


def branch_label(value: bool) -> str:
    """Map a condition result to the label of the edge it selects."""
    return BranchLabel.TRUE.value if value else BranchLabel.FALSE.value


def next_edge(graph: WorkflowGraph, node: Node, branch: Optional[bool] = None) -> Optional[Edge]:
    """
    Decide which edge to follow after ``node`` has produced its result.

    Args:
        graph: Workflow graph being executed
        node: Node that just finished
        branch: Boolean result when ``node`` is a condition node

    Returns:
        The edge to follow, or None when the run is finished

    Raises:
        InvalidGraphError: If a branch edge is missing or a non-condition
            node has several outgoing edges
    """
    if node.kind == NodeKind.OUTPUT:
        return None

    edges = graph.outgoing_edges(node.id)
    if not edges:
        return None

    if node.kind == NodeKind.CONDITION:
        label = branch_label(bool(branch))
        for edge in edges:
            if edge.label == label:
                return edge
        raise InvalidGraphError(f"No '{label}' edge found for condition node {node.id}")

    if len(edges) > 1:
        raise InvalidGraphError(
            f"Node {node.id} has {len(edges)} outgoing edges; only condition nodes may branch"
        )

    return edges[0]
