"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from fleet_notify.utils.env import default_env_path, load_env_file

load_env_file(default_env_path(), override=False)

DEFAULT_PUSH_GATEWAY_URL = "https://exp.host/--/api/v2/push/send"
# The Expo push API rejects requests with more than 100 messages.
GATEWAY_MAX_CHUNK_SIZE = 100


@dataclass(frozen=True)
class Settings:
  """Typed settings for the notification dispatch service."""

  environment: str
  debug: bool
  allowed_origins: tuple[str, ...]
  log_max_bytes: int
  log_backup_count: int
  log_http_4xx: bool
  pg_dsn: str | None
  pg_connect_timeout: int
  firebase_project_id: str | None
  firebase_service_account_json_path: str | None
  push_gateway_url: str
  push_access_token: str | None
  push_timeout_seconds: float
  push_chunk_size: int
  push_chunk_delay_seconds: float
  token_page_size: int
  queue_claim_limit: int
  persist_batch_size: int
  metrics_enabled: bool
  task_secret: str | None


@dataclass(frozen=True)
class DatabaseSettings:
  """Typed settings for database connectivity."""

  debug: bool
  pg_dsn: str | None
  pg_connect_timeout: int


def _parse_origins(raw: str | None) -> tuple[str, ...]:
  if not raw:
    return ()

  origins = [origin.strip() for origin in raw.split(",") if origin.strip()]
  if "*" in origins:
    raise ValueError("FLEET_ALLOWED_ORIGINS must not include wildcard origins.")

  return tuple(origins)


def _parse_bool(raw: str | None, *, default: bool = False) -> bool:
  """Parse a boolean-ish string from environment variables."""

  if raw is None or not raw.strip():
    return default

  normalized = raw.strip().lower()
  return normalized in {"1", "true", "yes", "on"}


def _optional_str(raw: str | None) -> str | None:
  if raw is None:
    return None
  value = raw.strip()
  return value or None


def _positive_int(name: str, default: str) -> int:
  value = int(os.getenv(name, default))
  if value <= 0:
    raise ValueError(f"{name} must be a positive integer.")
  return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
  """Load settings once per process."""

  environment = os.getenv("FLEET_ENV", "development").lower()
  debug = _parse_bool(os.getenv("FLEET_DEBUG"))

  log_max_bytes = _positive_int("FLEET_LOG_MAX_BYTES", "5242880")  # 5MB default
  log_backup_count = int(os.getenv("FLEET_LOG_BACKUP_COUNT", "10"))
  if log_backup_count < 0:
    raise ValueError("FLEET_LOG_BACKUP_COUNT must be zero or a positive integer.")

  push_timeout_seconds = float(os.getenv("FLEET_PUSH_TIMEOUT_SECONDS", "30"))
  if push_timeout_seconds <= 0:
    raise ValueError("FLEET_PUSH_TIMEOUT_SECONDS must be positive.")

  push_chunk_size = _positive_int("FLEET_PUSH_CHUNK_SIZE", str(GATEWAY_MAX_CHUNK_SIZE))
  if push_chunk_size > GATEWAY_MAX_CHUNK_SIZE:
    raise ValueError(f"FLEET_PUSH_CHUNK_SIZE must not exceed {GATEWAY_MAX_CHUNK_SIZE}.")

  push_chunk_delay_seconds = float(os.getenv("FLEET_PUSH_CHUNK_DELAY_SECONDS", "0.2"))
  if push_chunk_delay_seconds < 0:
    raise ValueError("FLEET_PUSH_CHUNK_DELAY_SECONDS must be zero or positive.")

  push_gateway_url = (os.getenv("FLEET_PUSH_GATEWAY_URL") or DEFAULT_PUSH_GATEWAY_URL).strip()
  if not push_gateway_url.startswith(("https://", "http://")):
    raise ValueError("FLEET_PUSH_GATEWAY_URL must be an http(s) URL.")

  database = get_database_settings()

  return Settings(
    environment=environment,
    debug=debug,
    allowed_origins=_parse_origins(os.getenv("FLEET_ALLOWED_ORIGINS")),
    log_max_bytes=log_max_bytes,
    log_backup_count=log_backup_count,
    log_http_4xx=_parse_bool(os.getenv("FLEET_LOG_HTTP_4XX")),
    pg_dsn=database.pg_dsn,
    pg_connect_timeout=database.pg_connect_timeout,
    firebase_project_id=_optional_str(os.getenv("FIREBASE_PROJECT_ID")),
    firebase_service_account_json_path=_optional_str(os.getenv("FIREBASE_SERVICE_ACCOUNT_JSON_PATH")),
    push_gateway_url=push_gateway_url,
    push_access_token=_optional_str(os.getenv("FLEET_PUSH_ACCESS_TOKEN")),
    push_timeout_seconds=push_timeout_seconds,
    push_chunk_size=push_chunk_size,
    push_chunk_delay_seconds=push_chunk_delay_seconds,
    token_page_size=_positive_int("FLEET_TOKEN_PAGE_SIZE", "50"),
    queue_claim_limit=_positive_int("FLEET_QUEUE_CLAIM_LIMIT", "500"),
    persist_batch_size=_positive_int("FLEET_PERSIST_BATCH_SIZE", "100"),
    metrics_enabled=_parse_bool(os.getenv("FLEET_METRICS_ENABLED"), default=True),
    task_secret=_optional_str(os.getenv("FLEET_TASK_SECRET")),
  )


@lru_cache(maxsize=1)
def get_database_settings() -> DatabaseSettings:
  """Load database settings without requiring web-runtime configuration."""
  debug = _parse_bool(os.getenv("FLEET_DEBUG"))
  pg_connect_timeout = _positive_int("FLEET_PG_CONNECT_TIMEOUT", "5")
  # Support fallback to DATABASE_URL for hosted Postgres providers.
  pg_dsn = _optional_str(os.getenv("FLEET_PG_DSN")) or _optional_str(os.getenv("DATABASE_URL"))
  return DatabaseSettings(debug=debug, pg_dsn=pg_dsn, pg_connect_timeout=pg_connect_timeout)
