from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx

from .config import JiraConfig
from .errors import JiraApiError, TicketCreationFailure
from .models import JiraIssueCreate, JiraIssueRef, JiraSearchResult
from .retry import JIRA_RETRY_POLICY, RetryExecutor, RetryPolicy

logger = logging.getLogger(__name__)


class JiraClient:
    """Thin async wrapper around the Jira Cloud REST API.

    Every request runs through a ``RetryExecutor`` so rate-limit responses
    (429/503, honouring ``Retry-After``) and network errors are retried.
    """

    def __init__(
        self,
        cfg: JiraConfig,
        policy: RetryPolicy = JIRA_RETRY_POLICY,
        http_client: Optional[httpx.AsyncClient] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            base_url=cfg.url.rstrip("/"),
            auth=(cfg.user_id, cfg.token),
            timeout=cfg.timeout_seconds,
            headers={"Accept": "application/json"},
        )
        self.executor = RetryExecutor(policy, sleep=sleep)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def request(
        self, method: str, path: str, operation_name: str, **kwargs: Any
    ) -> httpx.Response:
        return await self.executor.run(
            lambda: self._client.request(method, path, **kwargs),
            operation_name,
        )

    async def create_issue(self, fields: Dict[str, Any]) -> JiraIssueRef:
        body = JiraIssueCreate(fields=fields)
        response = await self.request(
            "POST", "/rest/api/3/issue", "create issue", json=body.model_dump()
        )
        if not response.is_success:
            raise TicketCreationFailure(
                f"Failed to create issue: {response.text}", status_code=response.status_code
            )
        return JiraIssueRef.model_validate(response.json())

    async def find_issue_by_label(self, label: str) -> Optional[JiraIssueRef]:
        """Return the first issue carrying ``label``, or ``None``."""
        response = await self.request(
            "GET",
            "/rest/api/3/search/jql",
            "search issues by label",
            params={"jql": f'labels = "{label}"', "fields": "key", "maxResults": 1},
        )
        if not response.is_success:
            logger.warning(f"Jira label search for {label} returned HTTP {response.status_code}")
            return None

        result = JiraSearchResult.model_validate(response.json())
        return result.issues[0] if result.issues else None

    async def assign_issue(self, issue_key: str, account_id: str) -> None:
        response = await self.request(
            "PUT",
            f"/rest/api/3/issue/{issue_key}/assignee",
            "assign issue",
            json={"accountId": account_id},
        )
        if not response.is_success:
            raise JiraApiError(
                f"Failed to assign {issue_key}: {response.text}", status_code=response.status_code
            )

    async def myself(self) -> Dict[str, Any]:
        response = await self.request("GET", "/rest/api/3/myself", "current user")
        if not response.is_success:
            raise JiraApiError(
                f"Jira connection check failed: {response.text}", status_code=response.status_code
            )
        return response.json()
