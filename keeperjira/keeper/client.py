"""Client for Keeper Commander service mode, API v2 (async queue mode).

A command is submitted to the queue, its status is polled with a growing
interval until it reaches a terminal state, and the result is fetched:

- POST {base}/executecommand-async   submit a command
- GET  {base}/status/{request_id}    request status
- GET  {base}/result/{request_id}    request result
- GET  {base}/queue/status           queue statistics
"""

from __future__ import annotations

import asyncio
import json
import logging
import math
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx
from pydantic import ValidationError

from ..config import KeeperConfig, PollingConfig
from ..errors import (
    CommandExpiredError,
    CommandFailedError,
    CommandSubmissionError,
    CommandTimeoutError,
    KeeperApiError,
    QueueFullError,
    RequestNotFoundError,
    UpstreamRateLimitedError,
)
from ..models import AsyncJob, JobStatus, SubmitResponse

logger = logging.getLogger(__name__)

BANNER_PREFIXES = ("Bypassing master password",)
BANNER_FRAGMENTS = ("running in service mode",)


class PollState(str, Enum):
    """States of one ``poll_until_terminal`` run."""

    SUBMITTED = "submitted"
    POLLING = "polling"
    COMPLETED = "completed"
    FAILED = "failed"
    EXPIRED = "expired"
    TIMED_OUT = "timed_out"


def parse_keeper_error_message(error_message: Optional[str]) -> Optional[str]:
    """Extract the user-facing message from verbose Commander CLI output."""
    if not error_message or not isinstance(error_message, str):
        return error_message

    error_text = error_message
    try:
        parsed = json.loads(error_message)
    except ValueError:
        parsed = None
    if isinstance(parsed, dict):
        if parsed.get("error"):
            error_text = str(parsed["error"])
        elif parsed.get("message"):
            error_text = str(parsed["message"])

    lines = [line.strip() for line in error_text.split("\n") if line.strip()]
    meaningful = [
        line for line in lines
        if not line.startswith(BANNER_PREFIXES)
        and not any(fragment in line for fragment in BANNER_FRAGMENTS)
    ]
    if not meaningful:
        return error_text

    last_line = meaningful[-1]
    # "Failed to approve request: <the actual reason>"
    colon_index = last_line.rfind(": ")
    if colon_index != -1:
        after_colon = last_line[colon_index + 2:].strip()
        if len(after_colon) > 20 and "Failed to" not in after_colon:
            return after_colon

    return last_line


def normalize_api_url(api_url: str) -> str:
    """Strip trailing slashes from a complete API v2 URL."""
    return api_url.rstrip("/")


def next_poll_interval(current_ms: int, polling: PollingConfig) -> int:
    """Grow the polling interval by the multiplier, capped at the maximum."""
    return min(math.floor(current_ms * polling.backoff_multiplier), polling.max_interval_ms)


class AsyncCommandClient:
    """Submits Commander commands to the async queue and polls them to completion."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        polling: Optional[PollingConfig] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        timeout: float = 30.0,
    ) -> None:
        self.base_url = normalize_api_url(base_url)
        self.polling = polling or PollingConfig()
        self._sleep = sleep
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=timeout)
        self._headers = {"api-key": api_key}

    @classmethod
    def from_config(cls, cfg: KeeperConfig, **kwargs: Any) -> "AsyncCommandClient":
        return cls(
            cfg.api_url,
            cfg.api_key,
            polling=cfg.polling,
            timeout=cfg.timeout_seconds,
            **kwargs,
        )

    async def __aenter__(self) -> "AsyncCommandClient":
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def _endpoint(self, path: str) -> str:
        return f"{self.base_url}/{path}"

    # ------------------------------------------------------------------
    # Queue endpoints
    # ------------------------------------------------------------------

    async def submit(self, command: str, filedata: Optional[Any] = None) -> str:
        """Queue ``command`` and return the server-assigned request id."""
        body: Dict[str, Any] = {"command": command}
        if filedata:
            body["filedata"] = filedata

        response = await self._client.post(
            self._endpoint("executecommand-async"),
            json=body,
            headers=self._headers,
        )

        if response.status_code == 503:
            raise QueueFullError("Keeper API queue is full. Please try again later.", status_code=503)
        if response.status_code == 429:
            raise UpstreamRateLimitedError(
                "Keeper API rate limit exceeded. Please try again later.", status_code=429
            )
        if not response.is_success:
            cleaned = parse_keeper_error_message(response.text)
            raise CommandSubmissionError(
                f"Keeper API submit error: {response.status_code} - {cleaned}",
                status_code=response.status_code,
            )

        submitted = SubmitResponse.model_validate(self._json(response))
        if not submitted.success or not submitted.request_id:
            raise CommandSubmissionError(
                f"Keeper API submit failed: {submitted.message or 'No request_id returned'}"
            )

        logger.info(f"Queued Keeper command as request {submitted.request_id} ({submitted.status})")
        return submitted.request_id

    async def get_status(self, request_id: str) -> AsyncJob:
        response = await self._client.get(self._endpoint(f"status/{request_id}"), headers=self._headers)

        if response.status_code == 404:
            raise RequestNotFoundError(
                f"Request {request_id} not found. It may have expired.", request_id
            )
        if not response.is_success:
            cleaned = parse_keeper_error_message(response.text)
            raise KeeperApiError(
                f"Keeper API status check error: {response.status_code} - {cleaned}",
                status_code=response.status_code,
            )

        try:
            return AsyncJob.model_validate(self._json(response))
        except ValidationError as e:
            raise KeeperApiError(f"Unexpected status response for request {request_id}: {e}") from e

    async def get_result(self, request_id: str) -> Any:
        response = await self._client.get(self._endpoint(f"result/{request_id}"), headers=self._headers)

        if response.status_code == 404:
            raise RequestNotFoundError(
                f"Result for request {request_id} not found. It may have expired.", request_id
            )
        if not response.is_success:
            cleaned = parse_keeper_error_message(response.text)
            raise KeeperApiError(
                f"Keeper API result error: {response.status_code} - {cleaned}",
                status_code=response.status_code,
            )

        return self._json(response)

    async def queue_status(self) -> Any:
        response = await self._client.get(self._endpoint("queue/status"), headers=self._headers)
        if not response.is_success:
            cleaned = parse_keeper_error_message(response.text)
            raise KeeperApiError(
                f"Keeper API queue status error: {response.status_code} - {cleaned}",
                status_code=response.status_code,
            )
        return self._json(response)

    # ------------------------------------------------------------------
    # Polling
    # ------------------------------------------------------------------

    async def poll_until_terminal(self, request_id: str) -> Any:
        """Poll ``request_id`` until it completes, fails, expires or times out."""
        polling = self.polling
        state = PollState.SUBMITTED
        interval_ms = polling.interval_ms
        attempts = 0

        while True:
            if state is PollState.SUBMITTED:
                await self._sleep(polling.initial_delay_ms / 1000)
                state = PollState.POLLING

            elif state is PollState.POLLING:
                if attempts >= polling.max_attempts:
                    state = PollState.TIMED_OUT
                    continue

                attempts += 1
                job = await self.get_status(request_id)
                logger.debug(f"Request {request_id} is {job.status.value} (poll {attempts})")

                if job.status is JobStatus.COMPLETED:
                    state = PollState.COMPLETED
                elif job.status is JobStatus.FAILED:
                    state = PollState.FAILED
                elif job.status is JobStatus.EXPIRED:
                    state = PollState.EXPIRED
                else:
                    await self._sleep(interval_ms / 1000)
                    interval_ms = next_poll_interval(interval_ms, polling)

            elif state is PollState.COMPLETED:
                return await self.get_result(request_id)

            elif state is PollState.FAILED:
                raise CommandFailedError(
                    f"Keeper command execution failed for request {request_id}", request_id
                )

            elif state is PollState.EXPIRED:
                raise CommandExpiredError(
                    f"Keeper command request {request_id} expired before processing", request_id
                )

            else:
                raise CommandTimeoutError(
                    f"Keeper command timed out after {polling.max_attempts} polling attempts. "
                    f"Request {request_id} may still be processing. "
                    f"Check status manually or increase timeout.",
                    request_id,
                    attempts,
                )

    async def execute(self, command: str, filedata: Optional[Any] = None) -> Any:
        """Submit ``command`` and wait for its result document."""
        request_id = await self.submit(command, filedata)
        return await self.poll_until_terminal(request_id)

    async def execute_command(self, command: str) -> Dict[str, Any]:
        """Like ``execute`` but treats an error reported inside the result as a failure."""
        data = await self.execute(command)

        if isinstance(data, dict) and (data.get("success") is False or data.get("error")):
            raw_error = data.get("error") or data.get("message") or "Unknown error"
            raise CommandFailedError(parse_keeper_error_message(str(raw_error)))

        message = data.get("message") if isinstance(data, dict) else None
        return {
            "success": True,
            "data": data,
            "message": message or "Command executed successfully",
        }

    async def test_connection(self) -> Dict[str, Any]:
        try:
            result = await self.execute_command("service-status")
        except CommandFailedError as e:
            raise KeeperApiError(f"Connection test failed: {e}") from e
        result["message"] = "Connection successful"
        return result

    @staticmethod
    def _json(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise KeeperApiError(
                f"Keeper API returned invalid JSON (HTTP {response.status_code})",
                status_code=response.status_code,
            ) from e
