"""
Graph model for user-authored workflows.
"""

import logging
from collections import deque
from typing import Dict, List, Optional

from ..errors import InvalidGraphError
from ..tools.agents import AGENT_PROFILES
from ..models.workflow import (
    BranchLabel,
    Edge,
    Node,
    NodeKind,
    OutputFormat,
    ValidationResult,
    Workflow,
)

logger = logging.getLogger(__name__)

# Config keys a node cannot run without
REQUIRED_CONFIG = {
    NodeKind.AGENT: ("agentId",),
    NodeKind.CONDITION: ("condition",),
    NodeKind.TRANSFORM: ("code",),
}

BRANCH_LABELS = {BranchLabel.TRUE.value, BranchLabel.FALSE.value}


class WorkflowGraph:
    """
    Read-only view over a workflow's nodes and edges.

    Built once per execution; the workflow definition is never
    mutated while an execution walks it.
    """

    def __init__(self, workflow: Workflow):
        self.workflow = workflow
        self._nodes: Dict[str, Node] = {}
        self._outgoing: Dict[str, List[Edge]] = {}
        self._incoming: Dict[str, List[Edge]] = {}

        for node in workflow.nodes:
            self._nodes.setdefault(node.id, node)

        for edge in workflow.edges:
            self._outgoing.setdefault(edge.source, []).append(edge)
            self._incoming.setdefault(edge.target, []).append(edge)

    @property
    def nodes(self) -> List[Node]:
        return list(self._nodes.values())

    def get_node(self, node_id: str) -> Node:
        node = self._nodes.get(node_id)
        if node is None:
            raise InvalidGraphError(f"Node not found: {node_id}")
        return node

    def outgoing_edges(self, node_id: str) -> List[Edge]:
        """All edges leaving ``node_id``, in definition order."""
        return list(self._outgoing.get(node_id, []))

    def incoming_edges(self, node_id: str) -> List[Edge]:
        return list(self._incoming.get(node_id, []))

    def triggers(self) -> List[Node]:
        return [n for n in self._nodes.values() if n.kind == NodeKind.TRIGGER]

    @property
    def trigger(self) -> Node:
        triggers = self.triggers()
        if len(triggers) != 1:
            raise InvalidGraphError(f"Expected exactly one trigger node, found {len(triggers)}")
        return triggers[0]

    def reachable_from(self, start_id: str) -> set:
        """Node ids reachable from ``start_id`` following edges forward."""
        seen = {start_id}
        queue = deque([start_id])
        while queue:
            current = queue.popleft()
            for edge in self._outgoing.get(current, []):
                if edge.target in self._nodes and edge.target not in seen:
                    seen.add(edge.target)
                    queue.append(edge.target)
        return seen

    def validate(self) -> ValidationResult:
        """
        Check the structural invariants of the workflow.

        Every violation is collected so callers can report all of
        them at once.
        """
        violations: List[str] = []

        seen_ids = set()
        for node in self.workflow.nodes:
            if node.id in seen_ids:
                violations.append(f"Duplicate node id: {node.id}")
            seen_ids.add(node.id)

        triggers = self.triggers()
        if not triggers:
            violations.append("Workflow has no trigger node")
        elif len(triggers) > 1:
            ids = ", ".join(t.id for t in triggers)
            violations.append(f"Workflow has {len(triggers)} trigger nodes ({ids}); exactly one is required")

        for edge in self.workflow.edges:
            if edge.source not in self._nodes:
                violations.append(f"Edge {edge.source} -> {edge.target} references missing source node {edge.source}")
            if edge.target not in self._nodes:
                violations.append(f"Edge {edge.source} -> {edge.target} references missing target node {edge.target}")

        reachable = self.reachable_from(triggers[0].id) if len(triggers) == 1 else None

        for node in self._nodes.values():
            violations.extend(self._node_violations(node, reachable))

        return ValidationResult(valid=not violations, violations=violations)

    def _node_violations(self, node: Node, reachable: Optional[set]) -> List[str]:
        violations = []

        if node.kind != NodeKind.TRIGGER:
            if not any(e.source in self._nodes for e in self.incoming_edges(node.id)):
                violations.append(f"Node {node.id} has no incoming edge")
            elif reachable is not None and node.id not in reachable:
                violations.append(f"Node {node.id} is unreachable from the trigger")

        for key in REQUIRED_CONFIG.get(node.kind, ()):
            if not node.config.get(key):
                violations.append(f"Node {node.id} ({node.kind.value}) is missing '{key}'")

        agent_id = node.config.get("agentId")
        if node.kind == NodeKind.AGENT and agent_id and agent_id not in AGENT_PROFILES:
            violations.append(f"Node {node.id} references unknown agent type '{agent_id}'")

        outgoing = [e for e in self.outgoing_edges(node.id) if e.target in self._nodes]

        if node.kind == NodeKind.CONDITION:
            labels = [e.label for e in outgoing]
            for label in (BranchLabel.TRUE.value, BranchLabel.FALSE.value):
                count = labels.count(label)
                if count == 0:
                    violations.append(f"Condition node {node.id} has no '{label}' branch edge")
                elif count > 1:
                    violations.append(f"Condition node {node.id} has {count} '{label}' branch edges")
            for label in labels:
                if label not in BRANCH_LABELS:
                    violations.append(f"Condition node {node.id} has an edge with invalid branch label {label!r}")
        elif len(outgoing) > 1:
            violations.append(
                f"Node {node.id} ({node.kind.value}) has {len(outgoing)} outgoing edges; "
                "only condition nodes may branch"
            )

        if node.kind == NodeKind.OUTPUT:
            fmt = node.config.get("format", OutputFormat.JSON.value)
            if fmt not in {f.value for f in OutputFormat}:
                violations.append(f"Output node {node.id} has unsupported format {fmt!r}")

        return violations


def validate(workflow: Workflow) -> ValidationResult:
    """Validate a workflow definition."""
    return WorkflowGraph(workflow).validate()


def ensure_valid(workflow: Workflow) -> WorkflowGraph:
    """Build the graph for ``workflow`` or raise InvalidGraphError with every violation."""
    graph = WorkflowGraph(workflow)
    result = graph.validate()
    if not result.valid:
        logger.info(f"Workflow {workflow.id} failed validation: {result.violations}")
        raise InvalidGraphError(
            f"Invalid workflow graph: {'; '.join(result.violations)}",
            violations=result.violations,
        )
    return graph
