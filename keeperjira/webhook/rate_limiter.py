"""Per-source sliding window rate limiting backed by the shared store."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Mapping, Optional

from ..models import RateLimitWindow
from ..storage import KeyValueStore
from .ticket import sanitize_identifier

logger = logging.getLogger(__name__)

DEFAULT_SOURCE = "default"


@dataclass
class RateLimitDecision:
    allowed: bool
    limit: int
    remaining: int
    reset_at_ms: int


def source_identifier(headers: Mapping[str, str]) -> str:
    """First hop of ``X-Forwarded-For``, else the shared default bucket."""
    forwarded: Optional[str] = None
    for name, value in headers.items():
        if name.lower() == "x-forwarded-for":
            forwarded = value
            break
    if forwarded:
        first_hop = forwarded.split(",")[0].strip()
        if first_hop:
            return first_hop
    return DEFAULT_SOURCE


def rate_limit_key(source_id: str) -> str:
    return f"webhook-ratelimit-{sanitize_identifier(source_id)}"


class SlidingWindowRateLimiter:
    """Allows ``limit`` requests per source within ``window_seconds``.

    The window record lives in the key-value store so every process sees the
    same counts. It rolls over once ``now - windowStart`` exceeds the window.
    """

    def __init__(
        self,
        store: KeyValueStore,
        limit: int = 50,
        window_seconds: int = 3600,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self.limit = limit
        self.window_ms = window_seconds * 1000
        self._clock = clock

    async def check(self, source_id: str) -> RateLimitDecision:
        """Record one request from ``source_id`` unless it is over the limit."""
        now = int(self._clock() * 1000)

        def apply(data):
            window = RateLimitWindow.model_validate(data) if data else None
            if window is None or now - window.windowStart > self.window_ms:
                window = RateLimitWindow(windowStart=now, requests=[])

            window.requests = [ts for ts in window.requests if now - ts < self.window_ms]
            reset_at_ms = window.windowStart + self.window_ms

            if len(window.requests) >= self.limit:
                decision = RateLimitDecision(
                    allowed=False, limit=self.limit, remaining=0, reset_at_ms=reset_at_ms
                )
            else:
                window.requests.append(now)
                decision = RateLimitDecision(
                    allowed=True,
                    limit=self.limit,
                    remaining=self.limit - len(window.requests),
                    reset_at_ms=reset_at_ms,
                )
            return window.model_dump(), decision

        # Prune, count and append in one atomic store update.
        decision = await self.store.update(
            rate_limit_key(source_id), apply, ttl_seconds=2 * self.window_ms // 1000
        )
        if not decision.allowed:
            logger.warning(f"Rate limit reached for source {source_id} ({self.limit}/window)")
        return decision
