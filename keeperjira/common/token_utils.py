"""Bearer token handling for webhook authentication."""

import hmac
import logging
import secrets
from typing import Optional

logger = logging.getLogger(__name__)

BEARER_SCHEME = "bearer"


def extract_bearer_token(authorization_header: Optional[str]) -> Optional[str]:
    """Return the token from an ``Authorization: Bearer <token>`` header.

    Returns ``None`` for a missing header, another scheme or an empty token.
    """
    if not authorization_header:
        return None

    parts = authorization_header.strip().split(None, 1)
    if len(parts) != 2 or parts[0].lower() != BEARER_SCHEME:
        logger.warning("Invalid authorization header format")
        return None

    token = parts[1].strip()
    return token or None


def tokens_match(provided: Optional[str], expected: Optional[str]) -> bool:
    """Compare a presented token against the configured secret.

    Tokens of different length are rejected straight away; equal-length tokens
    are compared in constant time.
    """
    if not provided or not expected:
        return False

    provided_bytes = provided.encode("utf-8")
    expected_bytes = expected.encode("utf-8")
    if len(provided_bytes) != len(expected_bytes):
        return False

    return hmac.compare_digest(provided_bytes, expected_bytes)


def generate_token(nbytes: int = 32) -> str:
    """Generate a new URL-safe webhook secret."""
    return secrets.token_urlsafe(nbytes)
