"""Retry with capped exponential backoff and jitter.

One ``RetryExecutor`` class hardens every unreliable backend in the project.
The backend-specific parts are the operation closure, the failure classifier
and the ``RetryPolicy`` instance:

- ``JIRA_RETRY_POLICY`` for the rate-limited Jira REST API
- ``STORAGE_RETRY_POLICY`` for the quota-limited key-value store

Operations either return a response object carrying ``status_code`` or raise.
Retryable statuses are retried and, once the budget is spent, the last
response is handed back to the caller. Transient exceptions are retried and,
once the budget is spent, the last exception is re-raised.
"""

from __future__ import annotations

import asyncio
import logging
import math
import random
import time
from dataclasses import dataclass, field
from email.utils import parsedate_to_datetime
from typing import Any, Awaitable, Callable, FrozenSet, Optional, TypeVar

import httpx
import redis.exceptions

from .errors import PermanentBackendError, TransientBackendError

logger = logging.getLogger(__name__)

T = TypeVar("T")

TRANSIENT_MESSAGE_MARKERS = (
    "rate limit",
    "rate-limit",
    "too many requests",
    "quota",
    "429",
    "503",
    "temporarily unavailable",
    "service unavailable",
    "try again later",
)

NETWORK_ERRORS = (
    httpx.TransportError,
    redis.exceptions.ConnectionError,
    redis.exceptions.TimeoutError,
    ConnectionError,
    TimeoutError,
    asyncio.TimeoutError,
)


@dataclass(frozen=True)
class RetryPolicy:
    """Tuning for one backend."""

    max_retries: int = 3
    initial_delay_ms: int = 1000
    max_delay_ms: int = 30000
    backoff_multiplier: float = 2.0
    jitter_factor: float = 0.2
    retryable_status_codes: FrozenSet[int] = field(default_factory=lambda: frozenset({429, 503}))

    @classmethod
    def from_dict(cls, data: dict, defaults: Optional["RetryPolicy"] = None) -> "RetryPolicy":
        """Build a policy from a config mapping, falling back to ``defaults``."""

        base = defaults or cls()
        codes = data.get("retryable_status_codes")
        return cls(
            max_retries=int(data.get("max_retries", base.max_retries)),
            initial_delay_ms=int(data.get("initial_delay_ms", base.initial_delay_ms)),
            max_delay_ms=int(data.get("max_delay_ms", base.max_delay_ms)),
            backoff_multiplier=float(data.get("backoff_multiplier", base.backoff_multiplier)),
            jitter_factor=float(data.get("jitter_factor", base.jitter_factor)),
            retryable_status_codes=frozenset(codes) if codes else base.retryable_status_codes,
        )


JIRA_RETRY_POLICY = RetryPolicy(
    max_retries=3,
    initial_delay_ms=1000,
    max_delay_ms=30000,
    backoff_multiplier=2.0,
    jitter_factor=0.2,
)

# 1s, 2s, 4s plus jitter
STORAGE_RETRY_POLICY = RetryPolicy(
    max_retries=3,
    initial_delay_ms=1000,
    max_delay_ms=8000,
    backoff_multiplier=2.0,
    jitter_factor=0.2,
)


def parse_retry_after(value: Optional[str], now: Optional[float] = None) -> Optional[int]:
    """Convert a ``Retry-After`` header value to milliseconds.

    Accepts a number of seconds or an HTTP-date. Dates in the past give 0.
    Returns ``None`` when the value is missing or unparseable.
    """
    if not value:
        return None
    value = value.strip()
    try:
        return max(int(value), 0) * 1000
    except ValueError:
        pass
    try:
        retry_at = parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError):
        return None
    if retry_at is None:
        return None
    current = time.time() if now is None else now
    return max(int((retry_at.timestamp() - current) * 1000), 0)


def add_jitter(delay_ms: float, jitter_factor: float, rand: Callable[[], float] = random.random) -> int:
    return math.floor(delay_ms + delay_ms * jitter_factor * rand())


def compute_retry_delay(
    policy: RetryPolicy,
    attempt: int,
    retry_after: Optional[str] = None,
    rand: Callable[[], float] = random.random,
    now: Optional[float] = None,
) -> int:
    """Delay in milliseconds before retrying after ``attempt`` (1-based) failed."""

    hint_ms = parse_retry_after(retry_after, now=now)
    if hint_ms is not None:
        # Honour the server hint, but never wait longer than twice the policy ceiling.
        return min(add_jitter(hint_ms, policy.jitter_factor, rand), policy.max_delay_ms * 2)

    base = policy.initial_delay_ms * policy.backoff_multiplier ** (attempt - 1)
    capped = min(base, policy.max_delay_ms)
    return add_jitter(capped, policy.jitter_factor, rand)


def is_retryable_status(status_code: int, policy: RetryPolicy) -> bool:
    return status_code in policy.retryable_status_codes


def is_transient_error(exc: BaseException) -> bool:
    """Default classifier: network failures and rate-limit wording are transient."""

    if isinstance(exc, PermanentBackendError):
        return False
    if isinstance(exc, TransientBackendError):
        return True
    if isinstance(exc, NETWORK_ERRORS):
        return True
    text = str(exc).lower()
    return any(marker in text for marker in TRANSIENT_MESSAGE_MARKERS)


def _status_of(result: Any) -> Optional[int]:
    status = getattr(result, "status_code", None)
    return status if isinstance(status, int) else None


def _retry_after_of(result: Any) -> Optional[str]:
    headers = getattr(result, "headers", None)
    if headers is None:
        return None
    try:
        return headers.get("Retry-After") or headers.get("retry-after")
    except AttributeError:
        return None


class RetryExecutor:
    """Runs an async operation under a ``RetryPolicy``."""

    def __init__(
        self,
        policy: RetryPolicy,
        classifier: Callable[[BaseException], bool] = is_transient_error,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        rand: Callable[[], float] = random.random,
    ) -> None:
        self.policy = policy
        self.classifier = classifier
        self._sleep = sleep
        self._rand = rand

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        operation_name: str = "operation",
        max_retries: Optional[int] = None,
    ) -> T:
        retries = self.policy.max_retries if max_retries is None else max_retries
        total_attempts = retries + 1

        for attempt in range(1, total_attempts + 1):
            try:
                result = await operation()
            except Exception as exc:
                if not self.classifier(exc):
                    raise
                if attempt >= total_attempts:
                    logger.error(
                        f"{operation_name} failed after {retries} retries: {exc}"
                    )
                    raise
                delay_ms = compute_retry_delay(self.policy, attempt, rand=self._rand)
                logger.warning(
                    f"{operation_name} failed with transient error, retrying "
                    f"(attempt {attempt}/{total_attempts}, delay {delay_ms}ms): {exc}"
                )
                await self._sleep(delay_ms / 1000)
                continue

            status = _status_of(result)
            if status is None or not is_retryable_status(status, self.policy):
                return result

            if attempt >= total_attempts:
                logger.warning(
                    f"{operation_name} still returned HTTP {status} after {retries} retries"
                )
                return result

            delay_ms = compute_retry_delay(
                self.policy, attempt, retry_after=_retry_after_of(result), rand=self._rand
            )
            logger.warning(
                f"{operation_name} returned HTTP {status}, retrying "
                f"(attempt {attempt}/{total_attempts}, delay {delay_ms}ms)"
            )
            await self._sleep(delay_ms / 1000)

        raise RuntimeError(f"{operation_name}: retry loop exited without a result")  # pragma: no cover
