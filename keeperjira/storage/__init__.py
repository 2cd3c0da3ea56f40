"""Shared key-value storage for webhook claims, rate-limit windows and the audit log."""

import logging

from ..config import StorageConfig
from ..retry import RetryExecutor, RetryPolicy, STORAGE_RETRY_POLICY
from .base import InMemoryStore, KeyValueStore
from .redis_store import RedisStore
from .retrying import RetryingStore, is_transient_storage_error

logger = logging.getLogger(__name__)

WEB_TRIGGER_CONFIG_KEY = "web-trigger-config"
AUDIT_LOG_KEY = "webhook-audit-log"


def create_store(cfg: StorageConfig, policy: RetryPolicy = STORAGE_RETRY_POLICY) -> KeyValueStore:
    """Build the configured backend wrapped in storage retries."""
    if cfg.backend == "memory":
        logger.warning("Using in-memory storage; claims and rate limits are not shared between processes")
        backend: KeyValueStore = InMemoryStore()
    elif cfg.backend == "redis":
        backend = RedisStore(cfg.redis_url, key_prefix=cfg.key_prefix)
    else:
        raise ValueError(f"Unknown storage backend: {cfg.backend}")

    executor = RetryExecutor(policy, classifier=is_transient_storage_error)
    return RetryingStore(backend, executor)


__all__ = [
    "AUDIT_LOG_KEY",
    "WEB_TRIGGER_CONFIG_KEY",
    "InMemoryStore",
    "KeyValueStore",
    "RedisStore",
    "RetryingStore",
    "create_store",
    "is_transient_storage_error",
]
