from __future__ import annotations

from collections.abc import AsyncGenerator
from functools import lru_cache

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from fleet_notify.config import get_database_settings

_ASYNC_DRIVER_PREFIX = "postgresql+asyncpg://"
_PLAIN_PREFIXES = ("postgresql://", "postgres://")


class Base(DeclarativeBase):
  pass


def async_database_url(dsn: str | None) -> str | None:
  """Point a plain Postgres DSN at the asyncpg driver; other URLs pass through."""
  if not dsn:
    return None
  for prefix in _PLAIN_PREFIXES:
    if dsn.startswith(prefix):
      return _ASYNC_DRIVER_PREFIX + dsn[len(prefix) :]
  return dsn


@lru_cache(maxsize=1)
def get_db_engine() -> AsyncEngine | None:
  """Create the process-wide engine on first use, or None when no DSN is configured."""
  settings = get_database_settings()
  url = async_database_url(settings.pg_dsn)
  if url is None:
    return None
  return create_async_engine(url, echo=settings.debug, pool_pre_ping=True, connect_args={"timeout": settings.pg_connect_timeout})


@lru_cache(maxsize=1)
def get_session_factory() -> async_sessionmaker[AsyncSession] | None:
  db_engine = get_db_engine()
  if db_engine is None:
    return None
  return async_sessionmaker(bind=db_engine, expire_on_commit=False, class_=AsyncSession)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
  """Dependency to get a database session."""
  session_factory = get_session_factory()
  if session_factory is None:
    raise RuntimeError("Database connection is not configured (FLEET_PG_DSN is missing).")

  async with session_factory() as session:
    yield session
