"""Webhook ingestion: turns Keeper alert deliveries into Jira tickets.

Each delivery runs through these steps in order, stopping at the first
early return:

1. load the web trigger config (400 when missing)
2. authenticate the bearer token (401)
3. rate limit per source (429)
4. size check (413)
5. parse JSON (400)
6. schema validation (400)
7. event filter (200 "skipped" for uninteresting events)
8. idempotent claim (200 "duplicate" when the event was already handled)
9. enrich from Keeper (best effort)
10. create the ticket (claim released on failure)
11. finalize the claim
12. assign the ticket (best effort)
13. append to the audit log (best effort)

Senders deliver at least once, possibly concurrently. The claim written in
step 8 uses the store's put-if-absent, so only one delivery per request uid
gets past it.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional

from pydantic import ValidationError

from ..common import extract_bearer_token, log_error, log_webhook_request, sanitize, tokens_match
from ..config import WebhookConfig
from ..errors import (
    AuthenticationFailure,
    MalformedPayload,
    PayloadTooLarge,
    RateLimitExceeded,
    SchemaViolation,
    TicketCreationFailure,
    WebhookNotConfigured,
    WebhookRejection,
)
from ..jira_client import JiraClient
from ..models import AuditEntry, DuplicateClaim, KeeperAlertPayload, WebTriggerConfig
from ..storage import AUDIT_LOG_KEY, WEB_TRIGGER_CONFIG_KEY, KeyValueStore
from .rate_limiter import RateLimitDecision, SlidingWindowRateLimiter, source_identifier
from .ticket import build_ticket_fields, claim_key, request_label

logger = logging.getLogger(__name__)

DetailFetcher = Callable[[str], Awaitable[Optional[Dict[str, Any]]]]
AssigneeResolver = Callable[[str], Awaitable[Optional[str]]]

SKIPPED_MESSAGE = (
    "Webhook received but skipped - only endpoint_privilege_manager "
    "approval_request_created events create tickets"
)
DUPLICATE_MESSAGE = "Duplicate webhook - ticket already exists"
CREATED_MESSAGE = "Issue created successfully"


@dataclass
class WebhookRequest:
    """Raw delivery as received by the HTTP layer."""

    body: bytes
    headers: Mapping[str, str] = field(default_factory=dict)

    def header(self, name: str) -> Optional[str]:
        lowered = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lowered:
                return value
        return None


@dataclass
class WebhookResponse:
    status_code: int
    body: Dict[str, Any]
    headers: Dict[str, str] = field(default_factory=dict)


@dataclass
class _Delivery:
    """Per-delivery bookkeeping; nothing here is shared between deliveries."""

    request_uid: Optional[str] = None
    claimed_key: Optional[str] = None
    headers: Dict[str, str] = field(default_factory=dict)


class ConfiguredAssigneeResolver:
    """Resolves every project to one configured Jira account id."""

    def __init__(self, account_id: Optional[str]) -> None:
        self.account_id = account_id

    async def __call__(self, project_key: str) -> Optional[str]:
        return self.account_id


def _rate_limit_headers(decision: RateLimitDecision) -> Dict[str, str]:
    return {
        "X-RateLimit-Limit": str(decision.limit),
        "X-RateLimit-Remaining": str(decision.remaining),
        "X-RateLimit-Reset": str(decision.reset_at_ms // 1000),
    }


def _iso(ms: int) -> str:
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc).isoformat()


class WebhookIngestionPipeline:
    """Authenticates, limits, validates and deduplicates Keeper alert deliveries."""

    def __init__(
        self,
        store: KeyValueStore,
        jira: JiraClient,
        settings: Optional[WebhookConfig] = None,
        detail_fetcher: Optional[DetailFetcher] = None,
        assignee_resolver: Optional[AssigneeResolver] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self.jira = jira
        self.settings = settings or WebhookConfig()
        self.detail_fetcher = detail_fetcher
        self.assignee_resolver = assignee_resolver or ConfiguredAssigneeResolver(
            self.settings.default_assignee_account_id
        )
        self.rate_limiter = SlidingWindowRateLimiter(
            store,
            limit=self.settings.rate_limit_per_hour,
            window_seconds=self.settings.rate_limit_window_seconds,
            clock=clock,
        )
        self._clock = clock

    async def handle(self, request: WebhookRequest) -> WebhookResponse:
        delivery = _Delivery()
        try:
            return await self._process(request, delivery)
        except WebhookRejection as e:
            return self._rejection_response(e, delivery)
        except Exception as e:
            logger.exception(f"Error processing webhook: {e}")
            log_error(f"Error processing webhook: {e}", self._redacted_body(request.body))
            if delivery.claimed_key:
                await self._release_claim(request.body)
            await self._best_effort(
                "audit log",
                lambda: self._audit("error", 500, delivery.request_uid, message=str(e)),
            )
            return WebhookResponse(
                status_code=500,
                body={
                    "success": False,
                    "error": str(e) or "Internal server error",
                    "code": "INTERNAL_ERROR",
                },
                headers=delivery.headers,
            )

    async def _process(self, request: WebhookRequest, delivery: _Delivery) -> WebhookResponse:
        trigger = await self._load_trigger_config()
        self._authenticate(request, trigger)

        source_id = source_identifier(request.headers)
        decision = await self.rate_limiter.check(source_id)
        delivery.headers = _rate_limit_headers(decision)
        if not decision.allowed:
            raise RateLimitExceeded(
                f"Rate limit exceeded: {decision.limit} requests per hour",
                reset_at_ms=decision.reset_at_ms,
                limit=decision.limit,
            )

        if len(request.body) > self.settings.max_payload_bytes:
            raise PayloadTooLarge(
                f"Payload exceeds {self.settings.max_payload_bytes} bytes"
            )

        data = self._parse(request.body)
        log_webhook_request(data, source_id)
        payload = self._validate(data)

        if not payload.creates_ticket:
            await self._best_effort(
                "audit log", lambda: self._audit("skipped", 200, payload.request_identifier)
            )
            return WebhookResponse(
                status_code=200,
                body={
                    "success": True,
                    "message": SKIPPED_MESSAGE,
                    "category": payload.category,
                    "audit_event": payload.audit_event,
                },
                headers=delivery.headers,
            )

        request_uid = payload.request_identifier
        delivery.request_uid = request_uid
        key = claim_key(request_uid)

        duplicate = await self._find_duplicate(key, request_label(request_uid))
        if duplicate is None:
            placeholder = DuplicateClaim()
            if await self.store.set_if_absent(key, placeholder.model_dump()):
                delivery.claimed_key = key
            else:
                # Lost the race to a concurrent delivery of the same event.
                duplicate = await self._read_claim(key) or placeholder

        if duplicate is not None:
            logger.info(f"Duplicate delivery for request {request_uid} ({duplicate.issueKey})")
            await self._best_effort(
                "audit log",
                lambda: self._audit("duplicate", 200, request_uid, issue_key=duplicate.issueKey),
            )
            return WebhookResponse(
                status_code=200,
                body={
                    "success": True,
                    "message": DUPLICATE_MESSAGE,
                    "issueKey": duplicate.issueKey,
                    "issueId": duplicate.issueId,
                    "duplicate": True,
                },
                headers=delivery.headers,
            )

        details = None
        if self.detail_fetcher is not None:
            details = await self._best_effort(
                "approval enrichment", lambda: self.detail_fetcher(request_uid)
            )

        fields = build_ticket_fields(payload, request_uid, trigger, details)
        try:
            issue = await self.jira.create_issue(fields)
        except TicketCreationFailure as e:
            logger.error(f"Ticket creation for request {request_uid} failed: {e.message}")
            await self.store.delete(key)
            delivery.claimed_key = None
            await self._best_effort(
                "audit log",
                lambda: self._audit("failed", e.status_code, request_uid, message=e.message),
            )
            return WebhookResponse(
                status_code=e.status_code,
                body={"success": False, "error": e.message, "code": "TICKET_CREATION_FAILED"},
                headers=delivery.headers,
            )

        await self.store.set(key, DuplicateClaim(issueKey=issue.key, issueId=issue.id).model_dump())
        delivery.claimed_key = None
        logger.info(f"Created {issue.key} for request {request_uid}")

        await self._best_effort("assignment", lambda: self._assign(trigger.projectKey, issue.key))
        await self._best_effort(
            "audit log", lambda: self._audit("created", 200, request_uid, issue_key=issue.key)
        )

        return WebhookResponse(
            status_code=200,
            body={
                "success": True,
                "message": CREATED_MESSAGE,
                "issueKey": issue.key,
                "issueId": issue.id,
            },
            headers=delivery.headers,
        )

    # ------------------------------------------------------------------
    # Steps 1-6: checks that run before any side effect
    # ------------------------------------------------------------------

    async def _load_trigger_config(self) -> WebTriggerConfig:
        data = await self.store.get(WEB_TRIGGER_CONFIG_KEY)
        if not data:
            raise WebhookNotConfigured(
                "Web trigger not configured. Please configure project and issue type."
            )
        try:
            return WebTriggerConfig.model_validate(data)
        except ValidationError as e:
            raise WebhookNotConfigured(f"Web trigger configuration is invalid: {e}") from e

    def _authenticate(self, request: WebhookRequest, trigger: WebTriggerConfig) -> None:
        if not trigger.webhookToken:
            raise AuthenticationFailure("Webhook token not configured", code="AUTH_NOT_CONFIGURED")

        token = extract_bearer_token(request.header("Authorization"))
        if token is None:
            raise AuthenticationFailure("Missing or malformed bearer token")

        if not tokens_match(token, trigger.webhookToken):
            raise AuthenticationFailure("Invalid webhook token")

    @staticmethod
    def _parse(body: bytes) -> Any:
        if not body:
            return {}
        try:
            return json.loads(body)
        except (ValueError, UnicodeDecodeError) as e:
            raise MalformedPayload(f"Invalid JSON payload: {e}") from e

    @staticmethod
    def _validate(data: Any) -> KeeperAlertPayload:
        if not isinstance(data, dict):
            raise SchemaViolation("Payload must be a JSON object")
        try:
            payload = KeeperAlertPayload.model_validate(data)
        except ValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
            )
            raise SchemaViolation(f"Invalid payload: {problems}") from e

        if payload.creates_ticket and not (payload.request_identifier or "").strip():
            raise SchemaViolation("request_uid is required for approval_request_created events")
        return payload

    # ------------------------------------------------------------------
    # Step 8: idempotent claim
    # ------------------------------------------------------------------

    async def _read_claim(self, key: str) -> Optional[DuplicateClaim]:
        data = await self.store.get(key)
        return DuplicateClaim.model_validate(data) if data else None

    async def _find_duplicate(self, key: str, label: str) -> Optional[DuplicateClaim]:
        existing = await self._read_claim(key)
        if existing is not None:
            return existing

        # The claim store may have been cleared while the ticket still exists.
        issue = await self.jira.find_issue_by_label(label)
        if issue is None:
            return None

        claim = DuplicateClaim(issueKey=issue.key, issueId=issue.id)
        await self.store.set(key, claim.model_dump())
        return claim

    async def _release_claim(self, body: bytes) -> None:
        """Delete this delivery's placeholder if it is still ``processing``."""
        try:
            data = json.loads(body) if body else {}
            request_uid = data.get("request_uid") or data.get("requestUid")
            if not request_uid:
                return
            key = claim_key(request_uid)
            existing = await self._read_claim(key)
            if existing is not None and existing.is_processing:
                await self.store.delete(key)
                logger.info(f"Released processing claim {key}")
        except Exception as e:
            logger.error(f"Failed to release webhook claim: {e}")

    # ------------------------------------------------------------------
    # Best-effort side effects
    # ------------------------------------------------------------------

    async def _best_effort(self, label: str, action: Callable[[], Awaitable[Any]]) -> Any:
        """Run ``action``; failures are logged and never reach the caller."""
        try:
            return await action()
        except Exception as e:
            logger.warning(f"Non-fatal {label} failure: {e}")
            return None

    async def _assign(self, project_key: str, issue_key: str) -> None:
        account_id = await self.assignee_resolver(project_key)
        if not account_id:
            logger.info(f"No assignee resolved for {project_key}; leaving {issue_key} unassigned")
            return
        await self.jira.assign_issue(issue_key, account_id)

    async def _audit(
        self,
        outcome: str,
        status_code: int,
        request_uid: Optional[str],
        issue_key: Optional[str] = None,
        message: Optional[str] = None,
    ) -> None:
        entry = AuditEntry(
            outcome=outcome,
            statusCode=status_code,
            requestUid=request_uid,
            issueKey=issue_key,
            message=message,
        )
        entries = await self.store.get(AUDIT_LOG_KEY) or []
        entries.insert(0, entry.model_dump())
        await self.store.set(AUDIT_LOG_KEY, entries[: self.settings.audit_log_size])

    # ------------------------------------------------------------------
    # Responses
    # ------------------------------------------------------------------

    def _rejection_response(self, e: WebhookRejection, delivery: _Delivery) -> WebhookResponse:
        logger.warning(f"Webhook rejected with {e.status_code} ({e.code}): {e.message}")
        body: Dict[str, Any] = {"success": False, "error": e.message, "code": e.code}
        headers = dict(delivery.headers)

        if isinstance(e, RateLimitExceeded):
            retry_after = max((e.reset_at_ms - int(self._clock() * 1000)) // 1000, 0)
            body["resetAt"] = _iso(e.reset_at_ms)
            body["retryAfterSeconds"] = retry_after
            headers["Retry-After"] = str(retry_after)

        return WebhookResponse(status_code=e.status_code, body=body, headers=headers)

    @staticmethod
    def _redacted_body(body: bytes) -> str:
        try:
            return json.dumps(sanitize(json.loads(body)), indent=2)
        except (ValueError, UnicodeDecodeError):
            return ""
