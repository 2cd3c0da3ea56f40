import asyncio

from fastapi.testclient import TestClient

from keeperjira.config import AppConfig, StorageConfig
from keeperjira.models import JiraIssueRef
from keeperjira.storage import WEB_TRIGGER_CONFIG_KEY, InMemoryStore
from keeperjira.webhook import WebhookIngestionPipeline
from keeperjira.webhook.server import create_app

TOKEN = "server-test-token"
ALERT = {
    "category": "endpoint_privilege_manager",
    "audit_event": "approval_request_created",
    "request_uid": "srv-1",
}


class FakeJira:
    def __init__(self):
        self.created = []

    async def find_issue_by_label(self, label):
        return None

    async def create_issue(self, fields):
        self.created.append(fields)
        return JiraIssueRef(id="20001", key="OPS-1")

    async def assign_issue(self, issue_key, account_id):
        pass


def make_client(tmp_path):
    store = InMemoryStore()
    asyncio.run(store.set(
        WEB_TRIGGER_CONFIG_KEY, {"projectKey": "OPS", "issueType": "Task", "webhookToken": TOKEN}
    ))
    config = AppConfig(log_dir=str(tmp_path))
    pipeline = WebhookIngestionPipeline(store, FakeJira(), config.webhook)
    return TestClient(create_app(config, pipeline=pipeline))


def test_health(tmp_path):
    with make_client(tmp_path) as client:
        response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "healthy", "service": "keeperjira"}


def test_webhook_creates_ticket(tmp_path):
    with make_client(tmp_path) as client:
        response = client.post(
            "/webhook/keeper", json=ALERT, headers={"Authorization": f"Bearer {TOKEN}"}
        )

    assert response.status_code == 200
    assert response.json()["issueKey"] == "OPS-1"
    assert response.headers["X-RateLimit-Limit"] == "50"


def test_webhook_rejects_bad_token(tmp_path):
    with make_client(tmp_path) as client:
        response = client.post(
            "/webhook/keeper", json=ALERT, headers={"Authorization": "Bearer wrong"}
        )

    assert response.status_code == 401
    assert response.json()["success"] is False


def test_unknown_path_returns_json_404(tmp_path):
    with make_client(tmp_path) as client:
        response = client.get("/nowhere")

    assert response.status_code == 404
    assert response.json()["error"] == "Not found"


def test_startup_builds_pipeline_from_config(tmp_path):
    config = AppConfig(storage=StorageConfig(backend="memory"), log_dir=str(tmp_path))
    app = create_app(config)

    with TestClient(app) as client:
        assert isinstance(app.state.pipeline, WebhookIngestionPipeline)
        response = client.post("/webhook/keeper", json=ALERT)

    # Fresh in-memory store has no web trigger configured yet.
    assert response.status_code == 400
    assert response.json()["code"] == "WEBHOOK_NOT_CONFIGURED"
    assert app.state.resources == []


class UnreachablePipeline:
    async def handle(self, request):
        raise AssertionError("oversized delivery reached the pipeline")


def test_declared_oversized_payload_is_rejected_before_pipeline(tmp_path):
    config = AppConfig(log_dir=str(tmp_path))
    config.webhook.max_payload_bytes = 1024
    app = create_app(config, pipeline=UnreachablePipeline())

    with TestClient(app) as client:
        response = client.post(
            "/webhook/keeper",
            content=b"x" * 4096,
            headers={"Authorization": f"Bearer {TOKEN}", "Content-Type": "application/json"},
        )

    assert response.status_code == 413
    assert response.json() == {
        "success": False,
        "error": "Payload exceeds 1024 bytes",
        "code": "PAYLOAD_TOO_LARGE",
    }
