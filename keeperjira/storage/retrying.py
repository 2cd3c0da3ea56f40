"""Key-value store wrapper that retries quota and connection failures."""

from __future__ import annotations

from typing import Any, Optional

import redis.exceptions

from ..retry import STORAGE_RETRY_POLICY, RetryExecutor, RetryPolicy, is_transient_error
from .base import KeyValueStore, Updater


def is_transient_storage_error(exc: BaseException) -> bool:
    """Redis busy/connection errors and quota wording are worth retrying."""
    if isinstance(exc, (redis.exceptions.BusyLoadingError, redis.exceptions.TryAgainError)):
        return True
    if isinstance(exc, redis.exceptions.ResponseError) and "OOM" in str(exc):
        return True
    return is_transient_error(exc)


class RetryingStore(KeyValueStore):
    """Runs every operation of ``store`` through a ``RetryExecutor``."""

    def __init__(
        self,
        store: KeyValueStore,
        executor: Optional[RetryExecutor] = None,
        policy: RetryPolicy = STORAGE_RETRY_POLICY,
    ) -> None:
        self.store = store
        self.executor = executor or RetryExecutor(policy, classifier=is_transient_storage_error)

    async def get(self, key: str) -> Optional[Any]:
        return await self.executor.run(lambda: self.store.get(key), f"storage.get({key})")

    async def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        await self.executor.run(
            lambda: self.store.set(key, value, ttl_seconds), f"storage.set({key})"
        )

    async def set_if_absent(self, key: str, value: Any) -> bool:
        return await self.executor.run(
            lambda: self.store.set_if_absent(key, value), f"storage.set_if_absent({key})"
        )

    async def delete(self, key: str) -> None:
        await self.executor.run(lambda: self.store.delete(key), f"storage.delete({key})")

    async def update(self, key: str, updater: Updater, ttl_seconds: Optional[int] = None) -> Any:
        return await self.executor.run(
            lambda: self.store.update(key, updater, ttl_seconds), f"storage.update({key})"
        )

    async def close(self) -> None:
        await self.store.close()
