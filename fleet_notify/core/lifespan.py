import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from urllib.parse import urlparse

from fastapi import FastAPI

from fleet_notify.core.database import get_db_engine
from fleet_notify.core.firebase import initialize_firebase
from fleet_notify.core.logging import initialize_logging


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
  """Set up logging and identity verification once uvicorn starts."""
  from fleet_notify.config import get_settings

  settings = get_settings()
  logger = logging.getLogger("fleet_notify.core.lifespan")

  try:
    initialize_logging(settings)
    logger.info("Startup complete - logging verified.")
    initialize_firebase()
    logger.info("Dispatch service configured environment=%s database=%s gateway=%s", settings.environment, _redact_dsn(settings.pg_dsn), settings.push_gateway_url)
  except Exception:
    # Log initialization failures but allow the app to continue starting.
    logger.warning("Initial startup setup failed; continuing without it.", exc_info=True)

  yield

  engine = get_db_engine()
  if engine is not None:
    await engine.dispose()


def _redact_dsn(raw: str | None) -> str:
  """Redact credentials from a DSN while keeping host/db visible."""
  if not raw:
    return "<unset>"

  parsed = urlparse(raw)
  if not parsed.scheme:
    return "<invalid>"

  user = parsed.username or ""
  host = parsed.hostname or ""
  port = f":{parsed.port}" if parsed.port else ""
  netloc = f"{user}@{host}{port}" if user else f"{host}{port}"
  database = parsed.path.lstrip("/")
  path = f"/{database}" if database else ""
  return f"{parsed.scheme}://{netloc}{path}"
