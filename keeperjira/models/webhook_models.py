"""Pydantic models for webhook deliveries and the records kept in the key-value store."""

from datetime import datetime, timezone
from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

TICKET_CATEGORY = "endpoint_privilege_manager"
TICKET_AUDIT_EVENT = "approval_request_created"

PROCESSING = "processing"


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class KeeperAlertPayload(BaseModel):
    """Keeper Security alert delivered to the webhook.

    Known fields are type-checked strictly; anything else Keeper sends is kept.
    """
    model_config = ConfigDict(extra="allow", strict=True)

    category: Optional[str] = None
    audit_event: Optional[str] = None
    request_uid: Optional[str] = None
    requestUid: Optional[str] = None
    username: Optional[str] = None
    remote_address: Optional[str] = None
    client_version: Optional[str] = None
    message: Optional[str] = None
    timestamp: Optional[Union[str, int, float]] = None

    @property
    def creates_ticket(self) -> bool:
        return self.category == TICKET_CATEGORY and self.audit_event == TICKET_AUDIT_EVENT

    @property
    def request_identifier(self) -> Optional[str]:
        return self.request_uid or self.requestUid


class WebTriggerConfig(BaseModel):
    """Where webhook tickets go and the shared secret deliveries must present."""
    model_config = ConfigDict(extra="ignore")

    projectKey: str = Field(..., min_length=1)
    issueType: str = Field(..., min_length=1)
    webhookToken: Optional[str] = None


class DuplicateClaim(BaseModel):
    """Idempotency record for one logical webhook event.

    ``issueKey``/``issueId`` hold the ``processing`` sentinel from claim time
    until the ticket exists.
    """
    model_config = ConfigDict(extra="ignore")

    issueKey: str = PROCESSING
    issueId: str = PROCESSING
    createdAt: str = Field(default_factory=utc_now_iso)

    @property
    def is_processing(self) -> bool:
        return self.issueKey == PROCESSING


class RateLimitWindow(BaseModel):
    """Sliding window for one source; timestamps are epoch milliseconds."""
    model_config = ConfigDict(extra="ignore")

    windowStart: int
    requests: List[int] = Field(default_factory=list)


class AuditEntry(BaseModel):
    """One delivery outcome in the audit ring buffer."""
    model_config = ConfigDict(extra="ignore")

    timestamp: str = Field(default_factory=utc_now_iso)
    outcome: str
    statusCode: int
    requestUid: Optional[str] = None
    issueKey: Optional[str] = None
    message: Optional[str] = None
