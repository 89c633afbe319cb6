"""Notification dispatch orchestration for admin broadcasts and queue drains."""

from __future__ import annotations

import logging
import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from fleet_notify.notifications.audit_repo import AuditTrailRepository
from fleet_notify.notifications.composer import compose_messages
from fleet_notify.notifications.contracts import Delivery, DispatchReport, DispatchStats, InAppNotificationEntry, NotificationPayload, ResolvedToken, TokenResolutionError, empty_batch_response
from fleet_notify.notifications.in_app_repo import InAppNotificationRepository
from fleet_notify.notifications.metrics_repo import NotificationMetricsRepository
from fleet_notify.notifications.push_gateway import PushDispatcher
from fleet_notify.notifications.queue_repo import PendingNotificationRepository
from fleet_notify.notifications.token_repo import PushTokenRepository

logger = logging.getLogger(__name__)

MODE_ADMIN_BROADCAST = "admin_broadcast"
MODE_BATCH = "batch"


@dataclass(frozen=True)
class BroadcastRequest:
  """A validated admin broadcast: one payload for an explicit recipient list."""

  recipients: tuple[str, ...]
  payload: NotificationPayload


@dataclass(frozen=True)
class InvocationResult:
  """Counters and timing for one invocation, renderable as the HTTP response body."""

  mode: str
  stats: DispatchStats
  execution_time_ms: int

  @property
  def is_empty(self) -> bool:
    return self.mode == MODE_BATCH and self.stats.recipients == 0

  def to_response(self) -> dict[str, Any]:
    if self.mode == MODE_ADMIN_BROADCAST:
      return self.stats.to_admin_response(execution_time_ms=self.execution_time_ms)
    if self.is_empty:
      return empty_batch_response()
    return self.stats.to_batch_response(execution_time_ms=self.execution_time_ms)


def _elapsed_ms(started: float) -> int:
  return int((time.monotonic() - started) * 1000)


class NotificationDispatchService:
  """Run the resolve, compose, dispatch, invalidate, and persist pipeline for either mode."""

  def __init__(
    self,
    *,
    token_repo: PushTokenRepository,
    queue_repo: PendingNotificationRepository,
    in_app_repo: InAppNotificationRepository,
    audit_repo: AuditTrailRepository,
    metrics_repo: NotificationMetricsRepository,
    push_dispatcher: PushDispatcher,
    claim_limit: int = 500,
  ) -> None:
    self._token_repo = token_repo
    self._queue_repo = queue_repo
    self._in_app_repo = in_app_repo
    self._audit_repo = audit_repo
    self._metrics_repo = metrics_repo
    self._push_dispatcher = push_dispatcher
    self._claim_limit = claim_limit

  async def admin_broadcast(self, request: BroadcastRequest, *, sender_id: str) -> InvocationResult:
    """Send one payload to every recipient and leave a processed audit trail.

    Token lookup failure raises `TokenResolutionError` before anything is sent or stored.
    """
    started = time.monotonic()
    recipients = list(request.recipients)
    logger.info("Broadcast starting sender=%s recipients=%s type=%s", sender_id, len(recipients), request.payload.notification_type)

    tokens_by_user = await self._token_repo.resolve_tokens(recipients)
    deliveries = [Delivery(user_id=user_id, payload=request.payload) for user_id in recipients]
    stats = await self._deliver(deliveries, tokens_by_user)

    audit = await self._audit_repo.record_broadcast(recipients=recipients, payload=request.payload, sender_id=sender_id)
    stats.errors.extend(audit.errors)

    result = InvocationResult(mode=MODE_ADMIN_BROADCAST, stats=stats, execution_time_ms=_elapsed_ms(started))
    await self._record_metrics(result, notification_type=request.payload.notification_type, user_id=sender_id)
    logger.info("Broadcast finished sender=%s duration_ms=%s sent=%s failed=%s stored=%s", sender_id, result.execution_time_ms, stats.sent, stats.failed, stats.stored)
    return result

  async def process_batch(self) -> InvocationResult:
    """Claim the oldest unprocessed queue rows and deliver them.

    Claim failure raises `QueueClaimError`. Token lookup failure is tolerated here: claimed rows
    still receive their in-app records and the failure is reported in the response.
    """
    started = time.monotonic()
    claimed = await self._queue_repo.claim_pending(self._claim_limit)
    if not claimed:
      logger.info("Batch found no pending notifications")
      return InvocationResult(mode=MODE_BATCH, stats=DispatchStats(), execution_time_ms=_elapsed_ms(started))

    logger.info("Batch processing pending notifications count=%s", len(claimed))
    user_ids = list(dict.fromkeys(record.user_id for record in claimed))
    errors: list[str] = []
    try:
      tokens_by_user = await self._token_repo.resolve_tokens(user_ids)
    except TokenResolutionError as exc:
      logger.error("Batch token lookup failed; continuing without push users=%s error=%s", len(user_ids), exc)
      tokens_by_user = {}
      errors.append(str(exc))

    deliveries = [Delivery(user_id=record.user_id, payload=record.to_payload()) for record in claimed]
    stats = await self._deliver(deliveries, tokens_by_user, errors=errors)

    result = InvocationResult(mode=MODE_BATCH, stats=stats, execution_time_ms=_elapsed_ms(started))
    await self._record_metrics(result, notification_type=MODE_BATCH, user_id=None)
    logger.info("Batch finished duration_ms=%s sent=%s stored=%s skipped=%s errors=%s", result.execution_time_ms, stats.sent, stats.stored, stats.without_tokens, stats.failed)
    return result

  async def _deliver(self, deliveries: Sequence[Delivery], tokens_by_user: Mapping[str, Sequence[ResolvedToken]], *, errors: Sequence[str] = ()) -> DispatchStats:
    composed = compose_messages(deliveries, tokens_by_user)
    logger.info("Composed push messages deliveries=%s with_tokens=%s messages=%s", len(deliveries), composed.with_tokens, len(composed.messages))

    report = await self._push_dispatcher.dispatch(composed.messages) if composed.messages else DispatchReport()
    collected = [*errors, *report.errors]

    deactivated = 0
    if report.invalid_tokens:
      owners = sorted({composed.token_to_user[token] for token in report.invalid_tokens if token in composed.token_to_user})
      logger.debug("Gateway reported unregistered devices users=%s", owners)
      invalidation = await self._token_repo.deactivate_tokens(report.invalid_tokens)
      deactivated = invalidation.updated
      collected.extend(invalidation.errors)

    # Every recipient gets an in-app record, with or without a device token.
    persisted = await self._in_app_repo.insert_many([InAppNotificationEntry.for_delivery(delivery) for delivery in deliveries])
    collected.extend(persisted.errors)

    return DispatchStats(
      recipients=len(deliveries),
      with_tokens=composed.with_tokens,
      without_tokens=composed.without_tokens,
      sent=report.sent,
      failed=report.failed,
      stored=persisted.stored,
      deactivated=deactivated,
      errors=collected,
    )

  async def _record_metrics(self, result: InvocationResult, *, notification_type: str, user_id: str | None) -> None:
    stats = result.stats
    metadata = {"mode": result.mode, **stats.to_metrics(), "executionTimeMs": result.execution_time_ms}
    await self._metrics_repo.record(notification_type=notification_type, user_id=user_id, delivery_status="sent" if stats.sent > 0 else "failed", metadata=metadata)
