"""Repository helpers for in-app notifications."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

from sqlalchemy import insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from fleet_notify.notifications.batching import batched_insert
from fleet_notify.notifications.contracts import InAppNotificationEntry, PersistResult
from fleet_notify.schema.notifications import InAppNotification

logger = logging.getLogger(__name__)


class InAppNotificationRepository:
  """Persist in-app notifications to Postgres in fixed-size batches."""

  def __init__(self, session_factory: async_sessionmaker[AsyncSession], *, batch_size: int = 100) -> None:
    if batch_size <= 0:
      raise ValueError("batch_size must be a positive integer.")
    self._session_factory = session_factory
    self._batch_size = batch_size

  async def insert_many(self, entries: Sequence[InAppNotificationEntry]) -> PersistResult:
    """Insert one row per entry; each batch commits independently."""
    if not entries:
      return PersistResult()
    result = await batched_insert(self._insert_batch, entries, batch_size=self._batch_size, label="notifications")
    logger.info("Stored in-app notifications stored=%s failed=%s", result.stored, result.failed)
    return result

  async def _insert_batch(self, entries: list[InAppNotificationEntry]) -> None:
    rows: list[dict[str, Any]] = [{"user_id": entry.user_id, "type": entry.type, "title": entry.title, "message": entry.message, "data": entry.data, "is_read": entry.is_read} for entry in entries]
    async with self._session_factory() as session:
      await session.execute(insert(InAppNotification), rows)
      await session.commit()
