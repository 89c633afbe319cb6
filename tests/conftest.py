"""Shared fixtures for repository and route tests."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest


@pytest.fixture
def anyio_backend():
  return "asyncio"


def make_session_factory(session):
  """Build a callable usable as `async with factory() as session`."""
  factory = MagicMock()
  factory.return_value.__aenter__.return_value = session
  factory.return_value.__aexit__.return_value = False
  return factory


@pytest.fixture
def mock_db_session():
  session = AsyncMock()
  # Mock execute result
  result = MagicMock()
  result.all.return_value = []
  result.scalar_one_or_none.return_value = None
  session.execute.return_value = result
  session.add = MagicMock()
  return session


@pytest.fixture
def session_factory(mock_db_session):
  return make_session_factory(mock_db_session)


@pytest.fixture
def factory_for():
  return make_session_factory
