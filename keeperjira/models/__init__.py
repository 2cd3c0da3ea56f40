"""Shared models for the Keeper queue, Jira calls and webhook records."""

from .keeper_models import (
    AsyncJob,
    JobStatus,
    SubmitResponse,
)

from .jira_models import (
    JiraDocument,
    JiraIssueCreate,
    JiraIssueRef,
    JiraSearchResult,
    create_document,
)

from .webhook_models import (
    PROCESSING,
    TICKET_AUDIT_EVENT,
    TICKET_CATEGORY,
    AuditEntry,
    DuplicateClaim,
    KeeperAlertPayload,
    RateLimitWindow,
    WebTriggerConfig,
)

__all__ = [
    # Keeper queue models
    "AsyncJob",
    "JobStatus",
    "SubmitResponse",
    # Jira models
    "JiraDocument",
    "JiraIssueCreate",
    "JiraIssueRef",
    "JiraSearchResult",
    "create_document",
    # Webhook models
    "PROCESSING",
    "TICKET_AUDIT_EVENT",
    "TICKET_CATEGORY",
    "AuditEntry",
    "DuplicateClaim",
    "KeeperAlertPayload",
    "RateLimitWindow",
    "WebTriggerConfig",
]
