"""
Unit tests for node handlers.
"""
import pytest

from workflow_engine.errors import AgentExecutionError, ConditionEvaluationError
from workflow_engine.graphs.nodes import (
    NodeContext,
    agent_node,
    condition_node,
    format_output,
    get_handler,
    output_node,
    transform_node,
    trigger_node,
)
from workflow_engine.models.workflow import Node, NodeKind


def make_node(kind: str, node_id: str = "n1", **config) -> Node:
    return Node.model_validate({"id": node_id, "type": kind, "data": config})


@pytest.fixture
def context(agent_executor) -> NodeContext:
    return NodeContext(execution_id="exec-1", workflow_id="wf-1", agent_executor=agent_executor)


class TestTriggerNode:

    def test_passes_input_through(self, context):
        assert trigger_node({"a": 1}, make_node("trigger"), context) == {"a": 1}


class TestAgentNode:
    """Test agent node prompt composition and delegation."""

    @pytest.mark.asyncio
    async def test_delegates_composed_prompt(self, context, agent_executor):
        node = make_node("agent", agentId="research", prompt="Summarize {{topic}}")

        result = await agent_node({"topic": "bees"}, node, context)

        assert result == "agent reply"
        assert len(agent_executor.calls) == 1
        prompt = agent_executor.calls[0]["prompt"]
        assert prompt.startswith("You are a Research Agent.")
        assert "Task: Summarize bees" in prompt
        assert '"topic": "bees"' in prompt
        assert agent_executor.calls[0]["config"]["agentId"] == "research"

    @pytest.mark.asyncio
    async def test_unknown_agent_type(self, context):
        node = make_node("agent", agentId="astrologer")
        with pytest.raises(AgentExecutionError, match="astrologer"):
            await agent_node({}, node, context)

    @pytest.mark.asyncio
    async def test_executor_failure_propagates(self, make_agent):
        context = NodeContext(
            execution_id="exec-1",
            workflow_id="wf-1",
            agent_executor=make_agent(fail_with="backend down"),
        )
        with pytest.raises(AgentExecutionError, match="backend down"):
            await agent_node({}, make_node("agent", agentId="code"), context)

    @pytest.mark.asyncio
    async def test_unexpected_error_is_wrapped(self, make_agent):
        def explode(config, prompt):
            raise RuntimeError("boom")

        context = NodeContext(
            execution_id="exec-1",
            workflow_id="wf-1",
            agent_executor=make_agent(before_reply=explode),
        )
        with pytest.raises(AgentExecutionError, match="boom"):
            await agent_node({}, make_node("agent", agentId="code"), context)

    @pytest.mark.asyncio
    async def test_missing_executor(self):
        context = NodeContext(execution_id="exec-1", workflow_id="wf-1")
        with pytest.raises(AgentExecutionError, match="No agent executor"):
            await agent_node({}, make_node("agent", agentId="code"), context)


class TestConditionNode:
    """Test condition evaluation."""

    def test_true_and_false(self, context):
        node = make_node("condition", condition="input.score > 0.5")
        assert condition_node({"score": 0.9}, node, context) is True
        assert condition_node({"score": 0.1}, node, context) is False

    def test_flat_field_access(self, context):
        node = make_node("condition", condition="status == 'ok'")
        assert condition_node({"status": "ok"}, node, context) is True

    def test_evaluation_error(self, context):
        node = make_node("condition", node_id="check", condition="missing > 1")
        with pytest.raises(ConditionEvaluationError) as exc_info:
            condition_node({}, node, context)
        assert exc_info.value.node_id == "check"


class TestTransformNode:
    """Test map/filter/reduce transforms."""

    def test_map_over_list(self, context):
        node = make_node("transform", transformType="map", code="item * 10 + index")
        assert transform_node([1, 2], node, context) == [10, 21]

    def test_map_over_mapping(self, context):
        node = make_node("transform", transformType="map", code="{'name': upper(name)}")
        assert transform_node({"name": "ada"}, node, context) == {"name": "ADA"}

    def test_filter(self, context):
        node = make_node("transform", transformType="filter", code="item['active']")
        items = [{"id": 1, "active": True}, {"id": 2, "active": False}]
        assert transform_node(items, node, context) == [{"id": 1, "active": True}]

    def test_reduce_with_initial(self, context):
        node = make_node("transform", transformType="reduce", code="acc + item", initial=100)
        assert transform_node([1, 2, 3], node, context) == 106

    def test_failure_passes_input_through_with_warning(self, context):
        node = make_node("transform", node_id="shape", code="undefined_name + 1")

        result = transform_node({"a": 1}, node, context)

        assert result == {"a": 1}
        assert len(context.warnings) == 1
        assert "shape" in context.warnings[0]

    def test_filter_requires_list(self, context):
        node = make_node("transform", transformType="filter", code="item")
        assert transform_node({"a": 1}, node, context) == {"a": 1}
        assert context.warnings


class TestOutputNode:
    """Test output formatting."""

    def test_json_is_identity(self, context):
        node = make_node("output", format="json")
        assert output_node({"a": [1, 2]}, node, context) == {"a": [1, 2]}

    def test_default_format_is_json(self, context):
        assert output_node([1], make_node("output"), context) == [1]

    def test_text_with_template(self, context):
        node = make_node("output", format="text", template="Summary: {{summary}}")
        assert output_node({"summary": "done"}, node, context) == "Summary: done"

    def test_text_without_template(self):
        assert format_output("text", None, "plain") == "plain"
        assert format_output("text", None, {"a": 1}) == '{"a": 1}'

    def test_html_without_template(self):
        assert format_output("html", None, {"a": 1}) == '<pre>{\n  "a": 1\n}</pre>'


class TestHandlerRegistry:

    def test_every_kind_has_a_handler(self):
        for kind in NodeKind:
            assert callable(get_handler(kind))

    def test_lookup_by_string(self):
        assert get_handler("trigger") is trigger_node
