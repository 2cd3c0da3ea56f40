"""Logging utilities for consistent logging across modules."""

import json
import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

SENSITIVE_KEYS = ("apikey", "api_key", "password", "token", "secret", "authorization")
REDACTED = "[REDACTED]"


def _log_path(log_dir: Optional[str] = None) -> Path:
    log_path = Path(log_dir or os.getenv("KEEPERJIRA_LOG_DIR", "logs"))
    log_path.mkdir(parents=True, exist_ok=True)
    return log_path


def setup_logging(log_dir: Optional[str] = None, level: int = logging.INFO) -> None:
    """Setup logging configuration."""
    log_path = _log_path(log_dir)

    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.FileHandler(log_path / "keeperjira.log"),
            logging.StreamHandler()
        ]
    )


def is_sensitive_key(key: str) -> bool:
    lowered = key.lower()
    return any(marker in lowered for marker in SENSITIVE_KEYS)


def sanitize(data: Any) -> Any:
    """Return a copy of ``data`` with values under sensitive keys redacted."""
    if isinstance(data, dict):
        return {
            key: REDACTED if isinstance(key, str) and is_sensitive_key(key) else sanitize(value)
            for key, value in data.items()
        }
    if isinstance(data, list):
        return [sanitize(item) for item in data]
    return data


def log_server_message(message: str) -> None:
    """Log server-related messages."""
    logging.info(f"[SERVER] {message}")


def log_webhook_request(webhook_data: Dict[str, Any], source_id: Optional[str] = None) -> None:
    """Log a redacted copy of an accepted webhook payload."""
    logging.info(
        f"[WEBHOOK] Delivery from {source_id or 'unknown'}: {json.dumps(sanitize(webhook_data))}"
    )


def log_error(error_message: str, error_data: str = "", log_dir: Optional[str] = None) -> None:
    """Log error messages with optional error data to a timestamped file."""
    try:
        log_path = _log_path(log_dir)

        timestamp = datetime.now().strftime("%Y%m%dT%H%M%S%f")
        error_file = log_path / f"error-{timestamp}.log"

        with open(error_file, "w", encoding="utf-8") as f:
            f.write(f"Error occurred at: {datetime.now().isoformat()}\n")
            f.write(f"Error message: {error_message}\n")
            if error_data:
                f.write(f"Error data:\n{error_data}\n")

        logging.error(f"Error logged to: {error_file}")

    except Exception as e:
        logging.error(f"Failed to log error: {e}")
