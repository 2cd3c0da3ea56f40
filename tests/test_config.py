import pathlib

from keeperjira.config import AppConfig

EXAMPLE = pathlib.Path(__file__).resolve().parents[1] / "config.example.yml"


def test_load_example_config(monkeypatch):
    monkeypatch.delenv("REDIS_URL", raising=False)
    cfg = AppConfig.load(EXAMPLE)

    assert cfg.keeper.api_url == "http://localhost:8080/api/v2"
    assert cfg.keeper.polling.backoff_multiplier == 1.5
    assert cfg.jira.url == "https://your-domain.atlassian.net"
    assert cfg.storage.redis_url == "redis://localhost:6379"
    assert cfg.webhook.endpoint == "/webhook/keeper"
    assert cfg.webhook.rate_limit_per_hour == 50
    assert cfg.retry.storage.max_delay_ms == 8000
    assert cfg.retry.jira.max_delay_ms == 30000


def test_secrets_come_from_environment(monkeypatch):
    monkeypatch.setenv("KEEPER_API_KEY", "env-keeper-key")
    monkeypatch.setenv("JIRA_API_TOKEN", "env-jira-token")
    monkeypatch.setenv("REDIS_URL", "redis://cache:6379/2")

    cfg = AppConfig.from_dict({
        "keeper": {"api_key": "file-key"},
        "jira": {"url": "https://jira.example", "token": "file-token"},
    })

    assert cfg.keeper.api_key == "env-keeper-key"
    assert cfg.jira.token == "env-jira-token"
    assert cfg.storage.redis_url == "redis://cache:6379/2"


def test_defaults_without_file(monkeypatch):
    monkeypatch.delenv("KEEPER_API_KEY", raising=False)
    cfg = AppConfig.from_env()

    assert cfg.keeper.api_key == ""
    assert cfg.keeper.polling.max_attempts == 60
    assert cfg.webhook.max_payload_bytes == 102400
    assert cfg.storage.backend == "redis"
