"""
Node handlers, one per node kind.

Every handler takes ``(input, node, context)`` and returns the node's
output. Only the agent handler is a coroutine; the others are pure
computations.

Error policy per kind:

- agent: any collaborator failure raises AgentExecutionError.
- condition: any evaluation failure raises ConditionEvaluationError.
- transform: an evaluation failure never raises; the input passes
  through unchanged and a warning is recorded on the context.
- output: unresolved template placeholders are kept literally.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from ..errors import AgentExecutionError, ConditionEvaluationError, ExpressionError
from ..models.workflow import Node, NodeKind, OutputFormat
from ..tools.agents import AgentExecutor, compose_prompt, get_agent_profile
from .expressions import evaluate_condition, evaluate_expression, render_template, template_context

logger = logging.getLogger(__name__)


@dataclass
class NodeContext:
    """Per-execution values handlers may need."""
    execution_id: str
    workflow_id: str
    user_id: Optional[str] = None
    agent_executor: Optional[AgentExecutor] = None
    warnings: List[str] = field(default_factory=list)

    def warn(self, message: str):
        logger.warning(f"[{self.execution_id}] {message}")
        self.warnings.append(message)


def trigger_node(input_data: Any, node: Node, context: NodeContext) -> Any:
    """Entry point: hands the execution input on unchanged."""
    return input_data


async def agent_node(input_data: Any, node: Node, context: NodeContext) -> Any:
    """Compose the agent prompt and delegate to the agent executor."""
    agent_id = node.config.get("agentId")
    if context.agent_executor is None:
        raise AgentExecutionError("No agent executor configured", agent_id=agent_id)

    profile = get_agent_profile(agent_id)
    task = render_template(node.config.get("prompt", ""), input_data)
    prompt = compose_prompt(profile, task, input_data)

    try:
        return await context.agent_executor.execute(dict(node.config), prompt)
    except AgentExecutionError:
        raise
    except Exception as e:
        raise AgentExecutionError(f"Agent '{agent_id}' failed: {e}", agent_id=agent_id)


def condition_node(input_data: Any, node: Node, context: NodeContext) -> bool:
    """Evaluate the node's boolean expression against the input."""
    expression = node.config.get("condition", "")
    try:
        return evaluate_condition(expression, template_context(input_data))
    except ExpressionError as e:
        raise ConditionEvaluationError(
            f"Condition node {node.id} failed to evaluate {expression!r}: {e.message}",
            node_id=node.id,
        )


def _transform(transform_type: str, code: str, input_data: Any, initial: Any) -> Any:
    base = template_context(input_data)

    if transform_type == "map":
        if isinstance(input_data, list):
            return [
                evaluate_expression(code, {**base, "item": item, "index": index})
                for index, item in enumerate(input_data)
            ]
        return evaluate_expression(code, base)

    if not isinstance(input_data, list):
        raise ExpressionError(f"'{transform_type}' transform requires a list input")

    if transform_type == "filter":
        return [
            item
            for index, item in enumerate(input_data)
            if evaluate_expression(code, {**base, "item": item, "index": index})
        ]

    if transform_type == "reduce":
        acc = initial
        for index, item in enumerate(input_data):
            acc = evaluate_expression(code, {**base, "acc": acc, "item": item, "index": index})
        return acc

    raise ExpressionError(f"Unknown transform type: {transform_type}")


def transform_node(input_data: Any, node: Node, context: NodeContext) -> Any:
    """Apply a map/filter/reduce expression; falls back to pass-through on error."""
    transform_type = node.config.get("transformType", "map")
    code = node.config.get("code", "")
    try:
        return _transform(transform_type, code, input_data, node.config.get("initial"))
    except ExpressionError as e:
        context.warn(
            f"Transform node {node.id} failed ({e.message}); input passed through unchanged"
        )
        return input_data


def format_output(fmt: str, template: Optional[str], input_data: Any) -> Any:
    if fmt == OutputFormat.TEXT.value:
        if template:
            return render_template(template, input_data)
        if isinstance(input_data, str):
            return input_data
        return json.dumps(input_data, default=str)

    if fmt == OutputFormat.HTML.value:
        if template:
            return render_template(template, input_data)
        return f"<pre>{json.dumps(input_data, indent=2, default=str)}</pre>"

    return input_data


def output_node(input_data: Any, node: Node, context: NodeContext) -> Any:
    """Format the input as json, text or html."""
    return format_output(
        node.config.get("format", OutputFormat.JSON.value),
        node.config.get("template"),
        input_data,
    )


NODE_HANDLERS: Dict[NodeKind, Callable[..., Any]] = {
    NodeKind.TRIGGER: trigger_node,
    NodeKind.AGENT: agent_node,
    NodeKind.CONDITION: condition_node,
    NodeKind.TRANSFORM: transform_node,
    NodeKind.OUTPUT: output_node,
}


def get_handler(kind: NodeKind) -> Callable[..., Any]:
    return NODE_HANDLERS[NodeKind(kind)]
