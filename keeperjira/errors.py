"""Exception types shared by the Keeper client, the Jira client and the webhook pipeline."""

from __future__ import annotations

from typing import Optional


class KeeperJiraError(Exception):
    """Base class for all keeperjira errors."""


# ---------------------------------------------------------------------------
# Webhook rejections (reported at the pipeline boundary, never retried)
# ---------------------------------------------------------------------------


class WebhookRejection(KeeperJiraError):
    """A delivery rejected before any side effect happened."""

    status_code = 400
    code = "WEBHOOK_REJECTED"

    def __init__(self, message: str, code: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        if code:
            self.code = code


class WebhookNotConfigured(WebhookRejection):
    status_code = 400
    code = "WEBHOOK_NOT_CONFIGURED"


class AuthenticationFailure(WebhookRejection):
    status_code = 401
    code = "WEBHOOK_INVALID_TOKEN"


class RateLimitExceeded(WebhookRejection):
    status_code = 429
    code = "WEBHOOK_RATE_LIMITED"

    def __init__(self, message: str, reset_at_ms: int, limit: int) -> None:
        super().__init__(message)
        self.reset_at_ms = reset_at_ms
        self.limit = limit


class PayloadTooLarge(WebhookRejection):
    status_code = 413
    code = "PAYLOAD_TOO_LARGE"


class MalformedPayload(WebhookRejection):
    status_code = 400
    code = "INVALID_JSON"


class SchemaViolation(WebhookRejection):
    status_code = 400
    code = "SCHEMA_VIOLATION"


# ---------------------------------------------------------------------------
# Keeper Commander job queue
# ---------------------------------------------------------------------------


class KeeperApiError(KeeperJiraError):
    """Generic failure talking to the Keeper Commander service."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class QueueFullError(KeeperApiError):
    """The remote queue refused the submission (HTTP 503)."""


class UpstreamRateLimitedError(KeeperApiError):
    """The remote queue rate limited the submission (HTTP 429)."""


class CommandSubmissionError(KeeperApiError):
    """The command could not be queued."""


class RequestNotFoundError(KeeperApiError):
    """Status or result lookup returned 404; the request may have expired."""

    def __init__(self, message: str, request_id: str) -> None:
        super().__init__(message, status_code=404)
        self.request_id = request_id


class CommandFailedError(KeeperApiError):
    """The job reached the ``failed`` state or its result reports an error."""

    def __init__(self, message: str, request_id: Optional[str] = None) -> None:
        super().__init__(message)
        self.request_id = request_id


class CommandExpiredError(CommandFailedError):
    """The job reached the ``expired`` state before it was processed."""


class CommandTimeoutError(KeeperApiError):
    """Polling ran out of attempts before the job reached a terminal state."""

    def __init__(self, message: str, request_id: str, attempts: int) -> None:
        super().__init__(message)
        self.request_id = request_id
        self.attempts = attempts


# ---------------------------------------------------------------------------
# Jira and storage backends
# ---------------------------------------------------------------------------


class JiraApiError(KeeperJiraError):
    """Non-success response from the Jira REST API."""

    def __init__(self, message: str, status_code: int) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class TicketCreationFailure(JiraApiError):
    """Jira refused to create the ticket for a webhook delivery."""


class TransientBackendError(KeeperJiraError):
    """A backend failure that is expected to succeed on retry."""


class PermanentBackendError(KeeperJiraError):
    """A backend failure that will not succeed on retry."""
