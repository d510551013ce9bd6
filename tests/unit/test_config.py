"""Tests for configuration loading."""

import pytest

import docroute.persistence as persistence
from docroute.config import DocrouteConfig, load_config
from docroute.persistence import InMemoryWorkflowRepository, SQLiteWorkflowRepository, get_repository
from docroute.transports import InMemoryTransport, get_transport
from docroute.transports.redis import RedisTransport


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for var in ("DOCROUTE_CONFIG", "DOCROUTE_DATABASE_URL", "DATABASE_URL", "DOCROUTE_TRANSPORT"):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setattr(persistence, "_repository_instance", None)


def test_load_config_from_env(tmp_path, monkeypatch):
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        """
log_level: DEBUG
transport:
  backend: redis
  redis:
    host: testhost
    port: 1234
retention:
  days: 30
  mode: full
  exclude_statuses: [rejected]
dispatch:
  timeout_seconds: 5
  emailjs:
    service_id: svc
    template_id: tpl
    public_key: pub
engine:
  max_conflict_retries: 5
"""
    )
    monkeypatch.setenv("DOCROUTE_CONFIG", str(config_path))

    config = load_config()
    assert config.log_level == "DEBUG"
    assert config.transport.backend == "redis"
    assert config.transport.redis.host == "testhost"
    assert config.transport.redis.port == 1234
    assert config.retention.days == 30
    assert config.retention.mode == "full"
    assert config.retention.exclude_statuses == ["rejected"]
    assert config.dispatch.timeout_seconds == 5
    assert config.dispatch.emailjs.is_configured
    assert config.engine.max_conflict_retries == 5
    assert config.reminders.advance_days == 3


def test_defaults_when_no_file(tmp_path):
    config = load_config(str(tmp_path / "absent.yaml"))
    assert config.database_url is None
    assert config.transport.backend == "inmemory"
    assert config.retention.days == 7
    assert not config.dispatch.emailjs.is_configured


def test_database_url_env_overrides_file(tmp_path, monkeypatch):
    config_path = tmp_path / "config.yaml"
    config_path.write_text("database_url: sqlite:///from-file.db\n")
    monkeypatch.setenv("DOCROUTE_DATABASE_URL", f"sqlite://{tmp_path / 'env.db'}")

    config = load_config(str(config_path))
    assert config.database_url.endswith("env.db")

    repo = get_repository(config=config)
    assert isinstance(repo, SQLiteWorkflowRepository)
    assert repo.db_path.endswith("env.db")


def test_get_repository_defaults_to_memory(tmp_path):
    repo = get_repository(config=load_config(str(tmp_path / "absent.yaml")))
    assert isinstance(repo, InMemoryWorkflowRepository)
    assert get_repository() is repo

    with pytest.raises(ValueError):
        get_repository("mysql://localhost/db")


def test_get_transport_uses_config(tmp_path, monkeypatch):
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        """
transport:
  backend: redis
  redis:
    host: confighost
    port: 6380
"""
    )
    monkeypatch.setenv("DOCROUTE_CONFIG", str(config_path))

    transport = get_transport()
    assert isinstance(transport, RedisTransport)
    assert transport.host == "confighost"
    assert transport.port == 6380

    assert isinstance(get_transport("inmemory"), InMemoryTransport)
    with pytest.raises(ValueError):
        get_transport("carrier-pigeon")


def test_transport_env_overrides_config(monkeypatch):
    config = DocrouteConfig(transport={"backend": "redis"})
    monkeypatch.setenv("DOCROUTE_TRANSPORT", "InMemory")

    assert isinstance(get_transport(config=config), InMemoryTransport)
    with pytest.raises(ValueError, match="expected one of: inmemory, redis"):
        get_transport("kafka", config=config)
