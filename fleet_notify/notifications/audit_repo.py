"""Audit trail for admin broadcasts, stored alongside queued notifications."""

from __future__ import annotations

import datetime
import logging
from collections.abc import Sequence
from typing import Any

from sqlalchemy import insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from fleet_notify.notifications.batching import batched_insert
from fleet_notify.notifications.contracts import NotificationPayload, PersistResult
from fleet_notify.schema.notifications import PendingNotification

logger = logging.getLogger(__name__)

AUDIT_PROCESSED_BY = "admin_broadcast"


def hour_bucket(moment: datetime.datetime) -> datetime.datetime:
  """Truncate a timestamp to the start of its hour."""
  return moment.replace(minute=0, second=0, microsecond=0)


def build_audit_row(*, user_id: str, payload: NotificationPayload, sender_id: str, sent_at: datetime.datetime) -> dict[str, Any]:
  """Build a queue row that is already processed so the batch drain never picks it up."""
  metadata = {**payload.metadata, "sentBy": sender_id, "sentAt": sent_at.isoformat(), "processedBy": AUDIT_PROCESSED_BY}
  return {
    "user_id": user_id,
    "type": payload.notification_type,
    "data": {"title": payload.title, "message": payload.message, "screen": payload.screen, "metadata": metadata},
    "processed": True,
    "created_at_hour": hour_bucket(sent_at),
  }


class AuditTrailRepository:
  """Write pre-claimed history rows for manually triggered broadcasts."""

  def __init__(self, session_factory: async_sessionmaker[AsyncSession], *, batch_size: int = 100) -> None:
    if batch_size <= 0:
      raise ValueError("batch_size must be a positive integer.")
    self._session_factory = session_factory
    self._batch_size = batch_size

  async def record_broadcast(self, *, recipients: Sequence[str], payload: NotificationPayload, sender_id: str, sent_at: datetime.datetime | None = None) -> PersistResult:
    """Insert one processed audit row per recipient."""
    if not recipients:
      return PersistResult()
    moment = sent_at or datetime.datetime.now(datetime.UTC)
    rows = [build_audit_row(user_id=user_id, payload=payload, sender_id=sender_id, sent_at=moment) for user_id in recipients]
    result = await batched_insert(self._insert_batch, rows, batch_size=self._batch_size, label="audit")
    if result.failed:
      logger.warning("Audit trail incomplete sender=%s stored=%s failed=%s", sender_id, result.stored, result.failed)
    return result

  async def _insert_batch(self, rows: list[dict[str, Any]]) -> None:
    async with self._session_factory() as session:
      await session.execute(insert(PendingNotification), rows)
      await session.commit()
