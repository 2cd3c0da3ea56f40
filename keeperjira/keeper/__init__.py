"""Keeper Commander service mode integration.

This module handles:
- Submitting commands to the API v2 async queue
- Polling requests until they reach a terminal state
- Fetching PEDM approval details for webhook tickets
"""

from .approvals import ApprovalDetailFetcher, extract_approval_data
from .client import (
    AsyncCommandClient,
    PollState,
    next_poll_interval,
    normalize_api_url,
    parse_keeper_error_message,
)

__all__ = [
    "ApprovalDetailFetcher",
    "AsyncCommandClient",
    "PollState",
    "extract_approval_data",
    "next_poll_interval",
    "normalize_api_url",
    "parse_keeper_error_message",
]
