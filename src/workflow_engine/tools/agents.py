"""
Agent catalog and the agent executor collaborator.
"""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx

from ..errors import AgentExecutionError
from .llm_client import LLMClient, LLMClientError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AgentProfile:
    """A predefined agent role."""
    id: str
    name: str
    description: str
    instructions: str
    capabilities: List[str] = field(default_factory=list)


AGENT_PROFILES: Dict[str, AgentProfile] = {
    profile.id: profile
    for profile in (
        AgentProfile(
            id="research",
            name="Research Agent",
            description="Finds and summarizes information on a given topic",
            instructions=(
                "Please provide a comprehensive but concise summary of the information. "
                "Include key facts, figures, and insights. Cite sources where possible."
            ),
            capabilities=["research", "summarize"],
        ),
        AgentProfile(
            id="code",
            name="Code Agent",
            description="Writes, reviews, and optimizes code",
            instructions=(
                "Please provide clean, well-documented code with explanations. "
                "Consider edge cases."
            ),
            capabilities=["write-code", "review-code", "optimize-code"],
        ),
        AgentProfile(
            id="writing",
            name="Writing Agent",
            description="Creates and edits written content",
            instructions="Please write in a clear, engaging style with proper grammar, structure, and flow.",
            capabilities=["write", "edit", "summarize"],
        ),
        AgentProfile(
            id="data_analysis",
            name="Data Analysis Agent",
            description="Analyzes data and generates insights",
            instructions=(
                "Please analyze the data thoroughly. Identify patterns, trends, and insights. "
                "Suggest visualizations where appropriate."
            ),
            capabilities=["analyze-data", "visualize-data"],
        ),
        AgentProfile(
            id="planning",
            name="Planning Agent",
            description="Creates plans and breaks down tasks",
            instructions=(
                "Please create a detailed plan with clear steps, timelines, and dependencies. "
                "Consider potential obstacles and mitigation strategies."
            ),
            capabilities=["plan", "organize"],
        ),
    )
}


def get_agent_profile(agent_id: str) -> AgentProfile:
    profile = AGENT_PROFILES.get(agent_id)
    if profile is None:
        raise AgentExecutionError(f"Agent type '{agent_id}' not found", agent_id=agent_id)
    return profile


def list_agents() -> List[Dict[str, Any]]:
    return [
        {
            "id": p.id,
            "name": p.name,
            "description": p.description,
            "capabilities": list(p.capabilities),
        }
        for p in AGENT_PROFILES.values()
    ]


def compose_prompt(profile: AgentProfile, task: str, context: Any) -> str:
    """Build the agent prompt: role, task, serialized input, role instructions."""
    prompt = f"You are a {profile.name}. {profile.description}\n\n"
    prompt += f"Task: {task}\n\n"

    if context not in (None, {}, [], ""):
        prompt += f"Context:\n{json.dumps(context, indent=2, default=str)}\n\n"

    prompt += profile.instructions
    return prompt


class AgentExecutor(ABC):
    """Collaborator that runs an agent prompt against an AI backend."""

    @abstractmethod
    async def execute(self, agent_config: Dict[str, Any], prompt: str) -> Any:
        """
        Run ``prompt`` for the agent described by ``agent_config``.

        Raises:
            AgentExecutionError: If the backend fails or times out
        """


class LLMAgentExecutor(AgentExecutor):
    """Agent executor backed by an OpenAI-compatible LLM endpoint."""

    def __init__(
        self,
        llm_client: LLMClient,
        default_model: str,
        timeout_seconds: float = 60.0,
    ):
        self.llm_client = llm_client
        self.default_model = default_model
        self.timeout_seconds = timeout_seconds

    async def execute(self, agent_config: Dict[str, Any], prompt: str) -> Any:
        agent_id = agent_config.get("agentId")
        parameters = agent_config.get("parameters") or {}

        kwargs = {}
        if "temperature" in parameters:
            kwargs["temperature"] = float(parameters["temperature"])
        if "max_tokens" in parameters:
            kwargs["max_tokens"] = int(parameters["max_tokens"])

        try:
            return await asyncio.wait_for(
                self.llm_client.complete(
                    prompt,
                    model=parameters.get("model", self.default_model),
                    **kwargs,
                ),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError:
            raise AgentExecutionError(
                f"Agent '{agent_id}' timed out after {self.timeout_seconds}s",
                agent_id=agent_id,
            )
        except (LLMClientError, httpx.HTTPError) as e:
            logger.error(f"Agent '{agent_id}' call failed: {e}")
            raise AgentExecutionError(f"Agent '{agent_id}' failed: {e}", agent_id=agent_id)
