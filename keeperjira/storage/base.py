from __future__ import annotations

import copy
from typing import Any, Callable, Dict, Optional, Tuple

Updater = Callable[[Optional[Any]], Tuple[Any, Any]]


class KeyValueStore:
    """Base class for the shared key-value store.

    Values are JSON documents (dicts, lists, strings, numbers).
    """

    async def get(self, key: str) -> Optional[Any]:
        raise NotImplementedError

    async def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        raise NotImplementedError

    async def set_if_absent(self, key: str, value: Any) -> bool:
        """Write ``value`` only when ``key`` is unset; return whether it was written."""
        raise NotImplementedError

    async def delete(self, key: str) -> None:
        raise NotImplementedError

    async def update(self, key: str, updater: Updater, ttl_seconds: Optional[int] = None) -> Any:
        """Atomically replace the value under ``key``.

        ``updater`` receives the current value (or ``None``) and returns
        ``(new_value, result)``; ``result`` is handed back to the caller. It may
        run more than once when a backend retries a conflicting write, so it
        must not have side effects.
        """
        raise NotImplementedError

    async def close(self) -> None:
        return None


class InMemoryStore(KeyValueStore):
    """Process-local store for development and tests. TTLs are ignored."""

    def __init__(self) -> None:
        self._data: Dict[str, Any] = {}

    async def get(self, key: str) -> Optional[Any]:
        value = self._data.get(key)
        return copy.deepcopy(value)

    async def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        self._data[key] = copy.deepcopy(value)

    async def set_if_absent(self, key: str, value: Any) -> bool:
        # No await between check and write, so this is atomic within the event loop.
        if key in self._data:
            return False
        self._data[key] = copy.deepcopy(value)
        return True

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    async def update(self, key: str, updater: Updater, ttl_seconds: Optional[int] = None) -> Any:
        # No await between read and write.
        new_value, result = updater(copy.deepcopy(self._data.get(key)))
        self._data[key] = copy.deepcopy(new_value)
        return result

    def keys(self) -> list:
        return list(self._data)
