"""Common utilities and shared functionality."""

from .token_utils import (
    extract_bearer_token,
    generate_token,
    tokens_match,
)

from .logging_utils import (
    setup_logging,
    log_server_message,
    log_webhook_request,
    log_error,
    sanitize,
)

__all__ = [
    # Token utilities
    "extract_bearer_token",
    "generate_token",
    "tokens_match",
    # Logging utilities
    "setup_logging",
    "log_server_message",
    "log_webhook_request",
    "log_error",
    "sanitize",
]
