"""Keeper webhook ingestion.

This module handles:
- Authenticating, rate limiting and validating Keeper alert deliveries
- Deduplicating deliveries with a claim in the shared store
- Creating, enriching and assigning the Jira ticket
"""

from .pipeline import (
    ConfiguredAssigneeResolver,
    WebhookIngestionPipeline,
    WebhookRequest,
    WebhookResponse,
)
from .rate_limiter import RateLimitDecision, SlidingWindowRateLimiter, source_identifier
from .ticket import build_ticket_fields, build_ticket_labels, claim_key, request_label

__all__ = [
    "ConfiguredAssigneeResolver",
    "RateLimitDecision",
    "SlidingWindowRateLimiter",
    "WebhookIngestionPipeline",
    "WebhookRequest",
    "WebhookResponse",
    "build_ticket_fields",
    "build_ticket_labels",
    "claim_key",
    "request_label",
    "source_identifier",
]
