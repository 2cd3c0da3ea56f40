import asyncio
import json

import httpx
import pytest

from keeperjira.config import JiraConfig
from keeperjira.errors import JiraApiError, TicketCreationFailure
from keeperjira.jira_client import JiraClient

CREATED = {"id": "10001", "key": "SEC-1", "self": "https://jira.example/rest/api/3/issue/10001"}


def make_client(handler, fake_sleep):
    http_client = httpx.AsyncClient(
        base_url="https://jira.example", transport=httpx.MockTransport(handler)
    )
    cfg = JiraConfig(url="https://jira.example", user_id="bot@example.com", token="t")
    return JiraClient(cfg, http_client=http_client, sleep=fake_sleep)


def test_create_issue(fake_sleep):
    seen = []

    def handler(request):
        seen.append(json.loads(request.content))
        return httpx.Response(201, json=CREATED)

    client = make_client(handler, fake_sleep)
    issue = asyncio.run(client.create_issue({"summary": "KeeperSecurity Alert - r1"}))

    assert issue.key == "SEC-1"
    assert issue.id == "10001"
    assert issue.url.endswith("/issue/10001")
    assert seen == [{"fields": {"summary": "KeeperSecurity Alert - r1"}}]


def test_create_issue_retries_rate_limits(fake_sleep):
    responses = [
        httpx.Response(429, headers={"Retry-After": "1"}, json={"errorMessages": ["slow down"]}),
        httpx.Response(201, json=CREATED),
    ]

    def handler(request):
        return responses.pop(0)

    client = make_client(handler, fake_sleep)
    issue = asyncio.run(client.create_issue({}))

    assert issue.key == "SEC-1"
    assert len(fake_sleep.calls) == 1
    assert 1.0 <= fake_sleep.calls[0] <= 1.2


def test_create_issue_gives_up_with_upstream_status(fake_sleep):
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(503, text="unavailable")

    client = make_client(handler, fake_sleep)

    with pytest.raises(TicketCreationFailure) as exc_info:
        asyncio.run(client.create_issue({}))

    assert exc_info.value.status_code == 503
    assert len(calls) == 4


def test_create_issue_client_error_is_not_retried(fake_sleep):
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(400, json={"errors": {"project": "project is required"}})

    client = make_client(handler, fake_sleep)

    with pytest.raises(TicketCreationFailure) as exc_info:
        asyncio.run(client.create_issue({}))

    assert exc_info.value.status_code == 400
    assert len(calls) == 1
    assert fake_sleep.calls == []


def test_find_issue_by_label(fake_sleep):
    seen = []

    def handler(request):
        seen.append(request.url)
        return httpx.Response(200, json={"issues": [{"id": "10001", "key": "SEC-1"}]})

    client = make_client(handler, fake_sleep)
    issue = asyncio.run(client.find_issue_by_label("request-abc"))

    assert issue.key == "SEC-1"
    assert seen[0].path == "/rest/api/3/search/jql"
    assert seen[0].params["jql"] == 'labels = "request-abc"'
    assert seen[0].params["maxResults"] == "1"


def test_find_issue_by_label_none_found_or_error(fake_sleep):
    client = make_client(lambda request: httpx.Response(200, json={"issues": []}), fake_sleep)
    assert asyncio.run(client.find_issue_by_label("request-abc")) is None

    client = make_client(lambda request: httpx.Response(400, json={}), fake_sleep)
    assert asyncio.run(client.find_issue_by_label("request-abc")) is None


def test_assign_issue(fake_sleep):
    seen = []

    def handler(request):
        seen.append((request.method, request.url.path, json.loads(request.content)))
        return httpx.Response(204)

    client = make_client(handler, fake_sleep)
    asyncio.run(client.assign_issue("SEC-1", "acc-1"))

    assert seen == [("PUT", "/rest/api/3/issue/SEC-1/assignee", {"accountId": "acc-1"})]


def test_assign_issue_failure(fake_sleep):
    client = make_client(lambda request: httpx.Response(404, text="no such issue"), fake_sleep)
    with pytest.raises(JiraApiError):
        asyncio.run(client.assign_issue("SEC-404", "acc-1"))
