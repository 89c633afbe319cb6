"""Claim rows from the `pending_notifications` queue."""

from __future__ import annotations

import logging

from sqlalchemy import Update, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from fleet_notify.notifications.contracts import PendingNotificationRecord, QueueClaimError
from fleet_notify.schema.notifications import PendingNotification

logger = logging.getLogger(__name__)


def build_claim_statement(limit: int) -> Update:
  """Build a single statement that claims up to `limit` oldest unprocessed rows and returns them.

  The candidate subquery skips rows locked by a concurrent claim, and the outer `processed = false`
  guard means a row can only ever be returned to one invocation.
  """
  if limit <= 0:
    raise ValueError("limit must be a positive integer.")

  candidates = select(PendingNotification.id).where(PendingNotification.processed.is_(False)).order_by(PendingNotification.created_at.asc()).limit(limit).with_for_update(skip_locked=True)
  return (
    update(PendingNotification)
    .where(PendingNotification.id.in_(candidates), PendingNotification.processed.is_(False))
    .values(processed=True)
    .returning(PendingNotification.id, PendingNotification.user_id, PendingNotification.type, PendingNotification.data, PendingNotification.created_at)
    .execution_options(synchronize_session=False)
  )


def _claim_order(record: PendingNotificationRecord) -> tuple[bool, float]:
  created_at = record.created_at
  return (created_at is None, created_at.timestamp() if created_at is not None else 0.0)


class PendingNotificationRepository:
  """Atomically claim queued notifications before any dispatch work begins."""

  def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
    self._session_factory = session_factory

  async def claim_pending(self, limit: int) -> list[PendingNotificationRecord]:
    """Mark up to `limit` oldest unprocessed rows processed and return them oldest-first."""
    stmt = build_claim_statement(limit)
    try:
      async with self._session_factory() as session:
        result = await session.execute(stmt)
        rows = result.all()
        await session.commit()
    except Exception as exc:  # noqa: BLE001
      logger.error("Claiming pending notifications failed limit=%s error=%s", limit, exc, exc_info=True)
      raise QueueClaimError(f"Failed to claim pending notifications: {exc}") from exc

    records = [PendingNotificationRecord(id=row.id, user_id=row.user_id, type=row.type, data=row.data or {}, created_at=row.created_at) for row in rows]
    # RETURNING order is unspecified; restore oldest-first processing order.
    records.sort(key=_claim_order)
    logger.info("Claimed pending notifications count=%s limit=%s", len(records), limit)
    return records
