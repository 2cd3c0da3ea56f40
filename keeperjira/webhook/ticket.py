"""Identifiers, labels and fields for tickets created from Keeper alerts."""

import re
from typing import Any, Dict, List, Optional

from ..models import KeeperAlertPayload, WebTriggerConfig, create_document

UNSAFE_LABEL_CHARS = re.compile(r"[^a-zA-Z0-9_-]")
BASE_LABEL = "keeper-webhook"


def sanitize_identifier(value: str) -> str:
    """Replace everything outside ``[a-zA-Z0-9_-]`` with ``-``."""
    return UNSAFE_LABEL_CHARS.sub("-", value)


def claim_key(request_uid: str) -> str:
    return f"webhook-processed-{sanitize_identifier(request_uid)}"


def request_label(request_uid: str) -> str:
    return f"request-{sanitize_identifier(request_uid)}"


def _label_text(value: str) -> str:
    return value.lower().replace("_", "-")


def build_ticket_labels(payload: KeeperAlertPayload, request_uid: str) -> List[str]:
    labels = [BASE_LABEL]
    if payload.category:
        labels.append(_label_text(payload.category))
    if payload.audit_event:
        labels.append(_label_text(payload.audit_event))
    labels.append(request_label(request_uid))
    return labels


def build_ticket_fields(
    payload: KeeperAlertPayload,
    request_uid: str,
    trigger: WebTriggerConfig,
    details: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Fields for ``POST /rest/api/3/issue``.

    With approval details the summary names the approval type; without them
    the ticket falls back to a basic alert summary.
    """
    if details:
        approval_type = details.get("approval_type") or "Unknown"
        summary = f"KEPM {approval_type} Request - {request_uid}"
        paragraphs = [
            f"Keeper Endpoint Privilege Manager {approval_type} request {request_uid}.",
            f"Justification: {details['justification']}" if details.get("justification") else "",
            f"Expires: {details['expire_at']}" if details.get("expire_at") else "",
        ]
    else:
        summary = f"KeeperSecurity Alert - {request_uid}"
        paragraphs = [
            f"Keeper Security alert {payload.audit_event or 'unknown'} ({payload.category or 'unknown'}).",
            f"Request: {request_uid}",
            f"User: {payload.username}" if payload.username else "",
        ]

    return {
        "project": {"key": trigger.projectKey},
        "summary": summary,
        "description": create_document(paragraphs).model_dump(),
        "issuetype": {"name": trigger.issueType},
        "labels": build_ticket_labels(payload, request_uid),
    }
