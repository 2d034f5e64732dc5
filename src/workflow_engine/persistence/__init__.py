"""
Persistence layer for workflow engine.
"""

from .base import ExecutionRepository, StateCache
from .memory import InMemoryRepository, InMemoryStateCache
from .repository import WorkflowRepository
from .state_cache import RedisStateCache
from .store import ExecutionStore, state_key

__all__ = [
    "ExecutionRepository",
    "StateCache",
    "InMemoryRepository",
    "InMemoryStateCache",
    "WorkflowRepository",
    "RedisStateCache",
    "ExecutionStore",
    "state_key",
]
