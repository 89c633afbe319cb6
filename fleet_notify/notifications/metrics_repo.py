"""Aggregate metric rows for dispatch invocations."""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from fleet_notify.schema.notifications import NotificationMetric

logger = logging.getLogger(__name__)


class NotificationMetricsRepository:
  """Persist one metric row per invocation on a best-effort basis."""

  def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
    self._session_factory = session_factory

  async def record(self, *, notification_type: str, user_id: str | None, delivery_status: str, metadata: dict[str, Any]) -> bool:
    """Insert a metric row; returns False instead of raising when the insert fails."""
    try:
      async with self._session_factory() as session:
        session.add(NotificationMetric(type=notification_type, user_id=user_id, delivery_status=delivery_status, platform="server", metadata_json=metadata))
        await session.commit()
    except Exception as exc:  # noqa: BLE001
      logger.warning("Notification metric insert failed type=%s error=%s", notification_type, exc, exc_info=True)
      return False
    return True


class NullNotificationMetricsRepository(NotificationMetricsRepository):
  """No-op repository when metric rows are disabled."""

  def __init__(self) -> None:
    pass

  async def record(self, *, notification_type: str, user_id: str | None, delivery_status: str, metadata: dict[str, Any]) -> bool:
    logger.debug("Notification metrics disabled; dropping type=%s status=%s", notification_type, delivery_status)
    return False
