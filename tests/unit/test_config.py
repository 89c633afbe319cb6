from __future__ import annotations

import pytest

from fleet_notify.config import DEFAULT_PUSH_GATEWAY_URL, get_database_settings, get_settings


@pytest.fixture(autouse=True)
def _fresh_settings():
  get_settings.cache_clear()
  get_database_settings.cache_clear()
  yield
  get_settings.cache_clear()
  get_database_settings.cache_clear()


def test_defaults(monkeypatch):
  for name in ("FLEET_PUSH_CHUNK_SIZE", "FLEET_PUSH_CHUNK_DELAY_SECONDS", "FLEET_TOKEN_PAGE_SIZE", "FLEET_QUEUE_CLAIM_LIMIT", "FLEET_PERSIST_BATCH_SIZE", "FLEET_PUSH_GATEWAY_URL", "FLEET_TASK_SECRET", "FLEET_METRICS_ENABLED"):
    monkeypatch.delenv(name, raising=False)

  settings = get_settings()

  assert settings.push_gateway_url == DEFAULT_PUSH_GATEWAY_URL
  assert settings.push_chunk_size == 100
  assert settings.push_chunk_delay_seconds == 0.2
  assert settings.token_page_size == 50
  assert settings.queue_claim_limit == 500
  assert settings.persist_batch_size == 100
  assert settings.metrics_enabled is True
  assert settings.task_secret is None


@pytest.mark.parametrize(
  ("name", "value"),
  [
    ("FLEET_PUSH_CHUNK_SIZE", "101"),
    ("FLEET_PUSH_CHUNK_SIZE", "0"),
    ("FLEET_PUSH_CHUNK_DELAY_SECONDS", "-1"),
    ("FLEET_PUSH_TIMEOUT_SECONDS", "0"),
    ("FLEET_TOKEN_PAGE_SIZE", "-5"),
    ("FLEET_QUEUE_CLAIM_LIMIT", "0"),
    ("FLEET_PUSH_GATEWAY_URL", "ftp://exp.host/push"),
    ("FLEET_ALLOWED_ORIGINS", "https://admin.example.com,*"),
  ],
)
def test_invalid_values_raise(monkeypatch, name, value):
  monkeypatch.setenv(name, value)

  with pytest.raises(ValueError):
    get_settings()


def test_origins_and_secret_are_parsed(monkeypatch):
  monkeypatch.setenv("FLEET_ALLOWED_ORIGINS", "https://admin.example.com, https://ops.example.com,")
  monkeypatch.setenv("FLEET_TASK_SECRET", "  cron-secret ")
  monkeypatch.setenv("FLEET_METRICS_ENABLED", "off")

  settings = get_settings()

  assert settings.allowed_origins == ("https://admin.example.com", "https://ops.example.com")
  assert settings.task_secret == "cron-secret"
  assert settings.metrics_enabled is False


def test_database_url_falls_back_to_database_url(monkeypatch):
  monkeypatch.delenv("FLEET_PG_DSN", raising=False)
  monkeypatch.setenv("DATABASE_URL", "postgres://fleet:pw@db.internal:5432/fleet")

  assert get_database_settings().pg_dsn == "postgres://fleet:pw@db.internal:5432/fleet"
