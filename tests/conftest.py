"""
Shared fixtures for workflow engine tests.

Everything here runs against the in-memory repository and state cache;
no Postgres, Redis or LLM endpoint is needed.
"""
import asyncio
from typing import Any, Callable, Dict, List, Optional

import pytest

from workflow_engine.coordinator import ExecutionCoordinator
from workflow_engine.errors import AgentExecutionError
from workflow_engine.manager import WorkflowManager
from workflow_engine.models.workflow import Workflow
from workflow_engine.persistence.memory import InMemoryRepository, InMemoryStateCache
from workflow_engine.persistence.store import ExecutionStore
from workflow_engine.tools.agents import AgentExecutor


class ScriptedAgentExecutor(AgentExecutor):
    """Agent executor returning canned replies and recording every call."""

    def __init__(
        self,
        reply: Any = "agent reply",
        fail_with: Optional[str] = None,
        before_reply: Optional[Callable[[Dict[str, Any], str], Any]] = None,
    ):
        self.reply = reply
        self.fail_with = fail_with
        self.before_reply = before_reply
        self.calls: List[Dict[str, Any]] = []

    async def execute(self, agent_config: Dict[str, Any], prompt: str) -> Any:
        self.calls.append({"config": agent_config, "prompt": prompt})
        if self.before_reply is not None:
            outcome = self.before_reply(agent_config, prompt)
            if asyncio.iscoroutine(outcome):
                await outcome
        if self.fail_with:
            raise AgentExecutionError(self.fail_with, agent_id=agent_config.get("agentId"))
        if callable(self.reply):
            return self.reply(agent_config, prompt)
        return self.reply


def build_workflow(nodes: List[dict], edges: List[dict], workflow_id: str = "wf-1", user_id: str = "user-1") -> Workflow:
    """Build a workflow from editor-style node/edge dicts."""
    return Workflow.model_validate({
        "id": workflow_id,
        "user_id": user_id,
        "name": f"Workflow {workflow_id}",
        "nodes": nodes,
        "edges": edges,
    })


@pytest.fixture
def workflow_factory():
    return build_workflow


@pytest.fixture
def linear_workflow() -> Workflow:
    """trigger -> transform -> agent -> output"""
    return build_workflow(
        nodes=[
            {"id": "trigger", "type": "trigger", "data": {}},
            {"id": "double", "type": "transform", "data": {"transformType": "map", "code": "item * 2"}},
            {"id": "writer", "type": "agent", "data": {"agentId": "writing", "prompt": "Describe {{input}}"}},
            {"id": "out", "type": "output", "data": {"format": "json"}},
        ],
        edges=[
            {"source": "trigger", "target": "double"},
            {"source": "double", "target": "writer"},
            {"source": "writer", "target": "out"},
        ],
    )


@pytest.fixture
def branching_workflow() -> Workflow:
    """trigger -> condition(score > 0.5) -> high | low"""
    return build_workflow(
        workflow_id="wf-branch",
        nodes=[
            {"id": "trigger", "type": "trigger", "data": {}},
            {"id": "check", "type": "condition", "data": {"condition": "score > 0.5"}},
            {"id": "high", "type": "output", "data": {"format": "text", "template": "high {{score}}"}},
            {"id": "low", "type": "output", "data": {"format": "text", "template": "low {{score}}"}},
        ],
        edges=[
            {"source": "trigger", "target": "check"},
            {"source": "check", "target": "high", "sourceHandle": "true"},
            {"source": "check", "target": "low", "sourceHandle": "false"},
        ],
    )


@pytest.fixture
def summarize_workflow() -> Workflow:
    """trigger -> research agent -> json output"""
    return build_workflow(
        workflow_id="wf-summarize",
        nodes=[
            {"id": "T", "type": "trigger", "data": {}},
            {"id": "A", "type": "agent", "data": {"agentId": "research", "prompt": "Summarize {{topic}}"}},
            {"id": "O", "type": "output", "data": {"format": "json"}},
        ],
        edges=[
            {"source": "T", "target": "A"},
            {"source": "A", "target": "O"},
        ],
    )


@pytest.fixture
def repository() -> InMemoryRepository:
    return InMemoryRepository()


@pytest.fixture
def cache() -> InMemoryStateCache:
    return InMemoryStateCache()


@pytest.fixture
def store(repository, cache) -> ExecutionStore:
    return ExecutionStore(repository, cache, state_ttl_seconds=3600)


@pytest.fixture
def agent_executor() -> ScriptedAgentExecutor:
    return ScriptedAgentExecutor()


@pytest.fixture
def coordinator(store, agent_executor) -> ExecutionCoordinator:
    return ExecutionCoordinator(store, agent_executor=agent_executor, max_steps=100)


@pytest.fixture
def manager(repository, store, coordinator) -> WorkflowManager:
    return WorkflowManager(repository, store, coordinator)


@pytest.fixture
def make_agent():
    """Factory for scripted agent executors."""
    return ScriptedAgentExecutor


@pytest.fixture
def make_coordinator(store):
    """Factory for coordinators sharing the test store."""
    def factory(agent_executor: Optional[AgentExecutor] = None, **kwargs) -> ExecutionCoordinator:
        return ExecutionCoordinator(store, agent_executor=agent_executor, **kwargs)
    return factory
