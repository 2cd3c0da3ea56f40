"""Fetch PEDM approval details used to enrich webhook tickets."""

from __future__ import annotations

import asyncio
import json
import logging
import re
from typing import Any, Awaitable, Callable, Dict, Optional

from ..errors import KeeperApiError
from .client import AsyncCommandClient

logger = logging.getLogger(__name__)

REQUEST_UID_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")
SYNC_DOWN_COMMAND = "pedm sync-down"


def _looks_like_approval(data: Any) -> bool:
    return isinstance(data, dict) and bool(data.get("approval_uid") or data.get("account_info"))


def extract_approval_data(raw: Any) -> Optional[Dict[str, Any]]:
    """Pull the approval object out of the shapes Commander returns."""
    if not raw:
        return None

    if isinstance(raw, list):
        return raw[0] if raw else None

    if not isinstance(raw, dict):
        return None

    data = raw.get("data")
    if raw.get("status") == "success" and isinstance(data, list) and data:
        return data[0]

    result = raw.get("result")
    if result:
        if isinstance(result, list):
            return result[0]
        if isinstance(result, dict):
            nested = result.get("data")
            if isinstance(nested, list) and nested:
                return nested[0]
            if _looks_like_approval(result):
                return result

    if _looks_like_approval(data):
        return data

    if _looks_like_approval(raw):
        return raw

    # Commander CLI output carried as a JSON string
    output = raw.get("output")
    if isinstance(output, str):
        try:
            parsed = json.loads(output)
        except ValueError:
            return None
        return extract_approval_data(parsed)

    return None


class ApprovalDetailFetcher:
    """Callable that returns approval details for a request uid, or ``None``.

    A view of a request Commander has not synced yet fails with "does not
    exist"; in that case the fetcher runs a sync-down and tries once more.
    Every other failure returns ``None``.
    """

    def __init__(
        self,
        client: AsyncCommandClient,
        sync_delay_seconds: float = 2.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.client = client
        self.sync_delay_seconds = sync_delay_seconds
        self._sleep = sleep

    async def __call__(self, request_uid: str) -> Optional[Dict[str, Any]]:
        if not request_uid or not REQUEST_UID_PATTERN.match(request_uid):
            logger.warning(f"Refusing to look up approval with unsafe uid {request_uid!r}")
            return None

        view_command = f"pedm approval view {request_uid} --format=json"
        try:
            raw = await self.client.execute(view_command)
        except KeeperApiError as e:
            if "does not exist" not in str(e).lower():
                logger.warning(f"Approval lookup for {request_uid} failed: {e}")
                return None

            logger.info(f"Approval {request_uid} not known locally, running sync-down")
            try:
                await self.client.execute(SYNC_DOWN_COMMAND)
            except KeeperApiError as sync_error:
                logger.warning(f"PEDM sync-down failed: {sync_error}")
                return None

            await self._sleep(self.sync_delay_seconds)

            try:
                raw = await self.client.execute(view_command)
            except KeeperApiError as retry_error:
                logger.warning(f"Approval lookup for {request_uid} failed after sync: {retry_error}")
                return None

        return extract_approval_data(raw)
