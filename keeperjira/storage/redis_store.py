"""Redis-backed key-value store."""

import json
import logging
import os
from typing import Any, Optional

import redis.asyncio as redis

from .base import KeyValueStore, Updater

logger = logging.getLogger(__name__)


class RedisStore(KeyValueStore):
    """Stores JSON documents in Redis strings under a common prefix."""

    def __init__(
        self,
        redis_url: Optional[str] = None,
        key_prefix: str = "keeperjira:",
        client: Optional[redis.Redis] = None,
    ):
        """Initialize the store with a Redis connection."""
        self.redis_url = redis_url or os.getenv("REDIS_URL", "redis://localhost:6379")
        self.key_prefix = key_prefix
        self.redis = client or redis.from_url(self.redis_url, decode_responses=True)

    def _key(self, key: str) -> str:
        return f"{self.key_prefix}{key}"

    async def get(self, key: str) -> Optional[Any]:
        raw = await self.redis.get(self._key(key))
        return self._decode(key, raw)

    @staticmethod
    def _decode(key: str, raw: Optional[str]) -> Optional[Any]:
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.error(f"Discarding non-JSON value stored under {key}")
            return None

    async def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        await self.redis.set(self._key(key), json.dumps(value), ex=ttl_seconds)

    async def set_if_absent(self, key: str, value: Any) -> bool:
        written = await self.redis.set(self._key(key), json.dumps(value), nx=True)
        return bool(written)

    async def delete(self, key: str) -> None:
        await self.redis.delete(self._key(key))

    async def update(self, key: str, updater: Updater, ttl_seconds: Optional[int] = None) -> Any:
        """Read-modify-write under ``WATCH``; redis-py re-runs it when the key changes."""
        full_key = self._key(key)

        async def apply(pipe):
            raw = await pipe.get(full_key)
            current = self._decode(key, raw)
            new_value, result = updater(current)
            pipe.multi()
            pipe.set(full_key, json.dumps(new_value), ex=ttl_seconds)
            return result

        return await self.redis.transaction(apply, full_key, value_from_callable=True)

    async def close(self) -> None:
        await self.redis.aclose()
