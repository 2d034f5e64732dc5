"""
Workflow definition models.
"""

from typing import Optional, List, Dict, Any
from enum import Enum
from datetime import datetime
from pydantic import BaseModel, Field


class NodeKind(str, Enum):
    """Node types understood by the engine."""
    TRIGGER = "trigger"
    AGENT = "agent"
    CONDITION = "condition"
    TRANSFORM = "transform"
    OUTPUT = "output"


class OutputFormat(str, Enum):
    """Formats supported by output nodes."""
    JSON = "json"
    TEXT = "text"
    HTML = "html"


class BranchLabel(str, Enum):
    """Labels selecting the outgoing edge of a condition node."""
    TRUE = "true"
    FALSE = "false"


class Node(BaseModel):
    """A typed unit of work inside a workflow."""
    id: str = Field(..., description="Unique node identifier within the workflow")
    kind: NodeKind = Field(..., alias="type", description="Node type")
    config: Dict[str, Any] = Field(default_factory=dict, alias="data", description="Kind-specific configuration")
    position: Optional[Dict[str, float]] = Field(default=None, description="Editor position, ignored by the engine")

    class Config:
        populate_by_name = True
        frozen = True


class Edge(BaseModel):
    """Directed link between two nodes."""
    id: Optional[str] = None
    source: str = Field(..., description="Source node id")
    target: str = Field(..., description="Target node id")
    label: Optional[str] = Field(
        default=None,
        alias="sourceHandle",
        description="Branch label (true/false) for condition outputs",
    )

    class Config:
        populate_by_name = True
        frozen = True


class Workflow(BaseModel):
    """Complete workflow definition."""
    id: Optional[str] = None
    user_id: Optional[str] = None
    name: str = Field(..., description="Workflow name")
    description: Optional[str] = None
    nodes: List[Node] = Field(default_factory=list)
    edges: List[Edge] = Field(default_factory=list)
    is_active: bool = Field(default=True, alias="isActive")
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        populate_by_name = True


class ValidationResult(BaseModel):
    """Outcome of validating a workflow graph."""
    valid: bool
    violations: List[str] = Field(default_factory=list)


class WebhookSubscription(BaseModel):
    """A registered webhook receiving workflow events."""
    id: Optional[str] = None
    workflow_id: str
    user_id: Optional[str] = None
    event: str = Field(default="workflow.completed", description="Event name to deliver")
    url: str
    created_at: Optional[datetime] = None
