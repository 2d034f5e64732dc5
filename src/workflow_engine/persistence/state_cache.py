"""
Redis-backed ephemeral store for execution progress.
"""

import logging
from typing import Optional

import redis.asyncio as redis

from .base import StateCache

logger = logging.getLogger(__name__)


class RedisStateCache(StateCache):
    """StateCache on top of a redis.asyncio client."""

    def __init__(self, client: redis.Redis):
        self.client = client

    @classmethod
    def from_url(cls, url: str) -> "RedisStateCache":
        return cls(redis.from_url(url, decode_responses=True))

    async def set(self, key: str, value: str, ttl_seconds: int):
        await self.client.set(key, value, ex=ttl_seconds)

    async def get(self, key: str) -> Optional[str]:
        value = await self.client.get(key)
        if isinstance(value, bytes):
            return value.decode("utf-8")
        return value

    async def delete(self, key: str):
        await self.client.delete(key)

    async def ping(self) -> bool:
        try:
            return bool(await self.client.ping())
        except redis.RedisError as e:
            logger.warning(f"Redis ping failed: {e}")
            return False

    async def close(self):
        await self.client.aclose()
