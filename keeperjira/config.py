from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import yaml
from dotenv import load_dotenv

from .retry import JIRA_RETRY_POLICY, STORAGE_RETRY_POLICY, RetryPolicy

load_dotenv()


def _load_file(path: str | Path) -> dict:
    with open(path, "r", encoding="utf-8") as fh:
        return yaml.safe_load(fh) or {}


@dataclass
class PollingConfig:
    """Polling schedule for the Keeper async job queue."""

    initial_delay_ms: int = 500
    interval_ms: int = 1000
    backoff_multiplier: float = 1.5
    max_interval_ms: int = 5000
    max_attempts: int = 60


@dataclass
class KeeperConfig:
    """Settings required to reach Keeper Commander service mode (API v2)."""

    api_url: str = "http://localhost:8080/api/v2"
    api_key: str = ""
    timeout_seconds: float = 30.0
    polling: PollingConfig = field(default_factory=PollingConfig)


@dataclass
class JiraConfig:
    """Settings required to connect to Jira."""

    url: str = ""
    user_id: str = ""
    token: str = ""
    timeout_seconds: float = 30.0


@dataclass
class StorageConfig:
    """Key-value store used for claims, rate-limit windows and the audit log."""

    backend: str = "redis"
    redis_url: str = "redis://localhost:6379"
    key_prefix: str = "keeperjira:"


@dataclass
class WebhookConfig:
    """Limits applied to inbound Keeper deliveries."""

    endpoint: str = "/webhook/keeper"
    host: str = "0.0.0.0"
    port: int = 8080
    rate_limit_per_hour: int = 50
    rate_limit_window_seconds: int = 3600
    max_payload_bytes: int = 100 * 1024
    audit_log_size: int = 100
    default_assignee_account_id: Optional[str] = None


@dataclass
class RetryConfig:
    """One retry policy per unreliable backend."""

    jira: RetryPolicy = JIRA_RETRY_POLICY
    storage: RetryPolicy = STORAGE_RETRY_POLICY


@dataclass
class AppConfig:
    """Top level application configuration."""

    keeper: KeeperConfig = field(default_factory=KeeperConfig)
    jira: JiraConfig = field(default_factory=JiraConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    webhook: WebhookConfig = field(default_factory=WebhookConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    log_dir: str = "logs"

    @staticmethod
    def load(path: str | Path) -> "AppConfig":
        """Load configuration from a YAML file."""

        data = _load_file(path)
        return AppConfig.from_dict(data)

    @staticmethod
    def from_env() -> "AppConfig":
        """Defaults plus whatever the environment provides."""

        return AppConfig.from_dict({})

    @staticmethod
    def from_dict(data: dict) -> "AppConfig":
        keeper_data = dict(data.get("keeper") or {})
        polling = PollingConfig(**(keeper_data.pop("polling", None) or {}))
        # Always load secrets from environment variables (never from config file)
        keeper_data["api_key"] = os.getenv("KEEPER_API_KEY", "")
        if os.getenv("KEEPER_API_URL"):
            keeper_data["api_url"] = os.environ["KEEPER_API_URL"]
        keeper = KeeperConfig(polling=polling, **keeper_data)

        jira_data = dict(data.get("jira") or {})
        jira_data["token"] = os.getenv("JIRA_API_TOKEN", "")
        jira = JiraConfig(**jira_data)

        storage_data = dict(data.get("storage") or {})
        if os.getenv("REDIS_URL"):
            storage_data["redis_url"] = os.environ["REDIS_URL"]
        storage = StorageConfig(**storage_data)

        webhook = WebhookConfig(**(data.get("webhook") or {}))

        retry_data = data.get("retry") or {}
        retry = RetryConfig(
            jira=RetryPolicy.from_dict(retry_data.get("jira") or {}, JIRA_RETRY_POLICY),
            storage=RetryPolicy.from_dict(retry_data.get("storage") or {}, STORAGE_RETRY_POLICY),
        )

        log_dir = data.get("log_dir") or os.getenv("KEEPERJIRA_LOG_DIR", "logs")

        return AppConfig(
            keeper=keeper,
            jira=jira,
            storage=storage,
            webhook=webhook,
            retry=retry,
            log_dir=log_dir,
        )
