"""Factory helpers for the notification dispatch service."""

from __future__ import annotations

from fleet_notify.config import Settings, get_settings
from fleet_notify.core.database import get_session_factory
from fleet_notify.notifications.audit_repo import AuditTrailRepository
from fleet_notify.notifications.in_app_repo import InAppNotificationRepository
from fleet_notify.notifications.metrics_repo import NotificationMetricsRepository, NullNotificationMetricsRepository
from fleet_notify.notifications.push_gateway import ExpoPushGateway, PushDispatcher, PushGatewayConfig
from fleet_notify.notifications.queue_repo import PendingNotificationRepository
from fleet_notify.notifications.service import NotificationDispatchService
from fleet_notify.notifications.token_repo import PushTokenRepository


def build_dispatch_service(settings: Settings) -> NotificationDispatchService:
  """Construct a dispatch service from environment configuration."""
  session_factory = get_session_factory()
  if session_factory is None:
    raise RuntimeError("Database connection is not configured (FLEET_PG_DSN is missing).")

  gateway = ExpoPushGateway(config=PushGatewayConfig(url=settings.push_gateway_url, access_token=settings.push_access_token, timeout_seconds=settings.push_timeout_seconds))
  dispatcher = PushDispatcher(gateway, chunk_size=settings.push_chunk_size, chunk_delay_seconds=settings.push_chunk_delay_seconds)

  # Metric rows are optional bookkeeping; skip the table entirely when disabled.
  if settings.metrics_enabled:
    metrics_repo: NotificationMetricsRepository = NotificationMetricsRepository(session_factory)
  else:
    metrics_repo = NullNotificationMetricsRepository()

  return NotificationDispatchService(
    token_repo=PushTokenRepository(session_factory, page_size=settings.token_page_size),
    queue_repo=PendingNotificationRepository(session_factory),
    in_app_repo=InAppNotificationRepository(session_factory, batch_size=settings.persist_batch_size),
    audit_repo=AuditTrailRepository(session_factory, batch_size=settings.persist_batch_size),
    metrics_repo=metrics_repo,
    push_dispatcher=dispatcher,
    claim_limit=settings.queue_claim_limit,
  )


def get_dispatch_service() -> NotificationDispatchService:
  """FastAPI dependency returning a service wired from process settings."""
  return build_dispatch_service(get_settings())
