from keeperjira.models import KeeperAlertPayload, WebTriggerConfig
from keeperjira.webhook import build_ticket_fields, build_ticket_labels, claim_key, request_label

TRIGGER = WebTriggerConfig(projectKey="SEC", issueType="Task", webhookToken="t")
PAYLOAD = KeeperAlertPayload(
    category="endpoint_privilege_manager",
    audit_event="approval_request_created",
    request_uid="req/1 2",
    username="alice@example.com",
)


def test_identifiers_are_sanitized():
    assert claim_key("req/1 2") == "webhook-processed-req-1-2"
    assert request_label("req/1 2") == "request-req-1-2"


def test_labels():
    assert build_ticket_labels(PAYLOAD, "req/1 2") == [
        "keeper-webhook",
        "endpoint-privilege-manager",
        "approval-request-created",
        "request-req-1-2",
    ]


def test_basic_fields_without_details():
    fields = build_ticket_fields(PAYLOAD, "req/1 2", TRIGGER)

    assert fields["project"] == {"key": "SEC"}
    assert fields["issuetype"] == {"name": "Task"}
    assert fields["summary"] == "KeeperSecurity Alert - req/1 2"
    assert fields["description"]["type"] == "doc"
    texts = [p["content"][0]["text"] for p in fields["description"]["content"]]
    assert "User: alice@example.com" in texts


def test_enriched_fields():
    details = {"approval_type": "Elevation", "justification": "install driver"}
    fields = build_ticket_fields(PAYLOAD, "req/1 2", TRIGGER, details)

    assert fields["summary"] == "KEPM Elevation Request - req/1 2"
    texts = [p["content"][0]["text"] for p in fields["description"]["content"]]
    assert "Justification: install driver" in texts
    assert not any(text.startswith("Expires") for text in texts)
