"""
Tools for workflow execution.
"""

from .llm_client import LLMClient, LLMClientError
from .agents import AgentExecutor, LLMAgentExecutor, AgentProfile, list_agents
from .webhooks import WebhookDispatcher

__all__ = [
    "LLMClient",
    "LLMClientError",
    "AgentExecutor",
    "LLMAgentExecutor",
    "AgentProfile",
    "list_agents",
    "WebhookDispatcher",
]
