from __future__ import annotations

import datetime
from unittest.mock import AsyncMock, MagicMock

import pytest

from fleet_notify.notifications.audit_repo import AuditTrailRepository, build_audit_row, hour_bucket
from fleet_notify.notifications.contracts import Delivery, InAppNotificationEntry, NotificationPayload
from fleet_notify.notifications.in_app_repo import InAppNotificationRepository
from fleet_notify.notifications.metrics_repo import NotificationMetricsRepository, NullNotificationMetricsRepository

_SENT_AT = datetime.datetime(2026, 5, 4, 14, 37, 12, 345000, tzinfo=datetime.UTC)


def _payload() -> NotificationPayload:
  return NotificationPayload(title="Recall notice", message="Please book a service", metadata={"campaign": "R-12"})


def _entries(count: int) -> list[InAppNotificationEntry]:
  return [InAppNotificationEntry.for_delivery(Delivery(user_id=f"u{index}", payload=_payload())) for index in range(count)]


def test_in_app_entry_is_unread_and_keeps_screen_and_metadata():
  entry = _entries(1)[0]

  assert entry.is_read is False
  assert entry.type == "dealership_notification"
  assert entry.data == {"screen": "/(home)", "campaign": "R-12"}


@pytest.mark.anyio
async def test_insert_many_writes_fixed_size_batches(mock_db_session, session_factory):
  repo = InAppNotificationRepository(session_factory, batch_size=100)

  result = await repo.insert_many(_entries(250))

  assert result.stored == 250
  assert result.errors == ()
  batch_sizes = [len(call.args[1]) for call in mock_db_session.execute.await_args_list]
  assert batch_sizes == [100, 100, 50]
  first_row = mock_db_session.execute.await_args_list[0].args[1][0]
  assert first_row == {"user_id": "u0", "type": "dealership_notification", "title": "Recall notice", "message": "Please book a service", "data": {"screen": "/(home)", "campaign": "R-12"}, "is_read": False}


@pytest.mark.anyio
async def test_insert_many_isolates_failing_batch(factory_for):
  session = AsyncMock()
  session.execute.side_effect = [MagicMock(), RuntimeError("insert or update violates foreign key constraint"), MagicMock()]
  repo = InAppNotificationRepository(factory_for(session), batch_size=100)

  result = await repo.insert_many(_entries(250))

  assert result.stored == 150
  assert result.failed == 100
  assert result.errors == ("notifications insert failed at offset 100",)
  assert session.execute.await_count == 3


def test_hour_bucket_truncates_to_hour():
  assert hour_bucket(_SENT_AT) == datetime.datetime(2026, 5, 4, 14, 0, tzinfo=datetime.UTC)


def test_audit_row_is_pre_processed_and_tagged():
  row = build_audit_row(user_id="u1", payload=_payload(), sender_id="admin-1", sent_at=_SENT_AT)

  assert row["processed"] is True
  assert row["created_at_hour"] == datetime.datetime(2026, 5, 4, 14, 0, tzinfo=datetime.UTC)
  assert row["type"] == "dealership_notification"
  assert row["data"]["title"] == "Recall notice"
  assert row["data"]["metadata"] == {"campaign": "R-12", "sentBy": "admin-1", "sentAt": _SENT_AT.isoformat(), "processedBy": "admin_broadcast"}


@pytest.mark.anyio
async def test_record_broadcast_reports_failed_batches_without_raising(factory_for):
  session = AsyncMock()
  session.execute.side_effect = [RuntimeError("disk full"), MagicMock()]
  repo = AuditTrailRepository(factory_for(session), batch_size=2)

  result = await repo.record_broadcast(recipients=["u1", "u2", "u3"], payload=_payload(), sender_id="admin-1", sent_at=_SENT_AT)

  assert result.stored == 1
  assert result.failed == 2
  assert result.errors == ("audit insert failed at offset 0",)
  rows = session.execute.await_args_list[1].args[1]
  assert [row["user_id"] for row in rows] == ["u3"]


@pytest.mark.anyio
async def test_metrics_record_is_best_effort(mock_db_session, session_factory):
  mock_db_session.commit.side_effect = RuntimeError("relation does not exist")
  repo = NotificationMetricsRepository(session_factory)

  recorded = await repo.record(notification_type="batch", user_id=None, delivery_status="sent", metadata={"mode": "batch"})

  assert recorded is False
  mock_db_session.add.assert_called_once()


@pytest.mark.anyio
async def test_null_metrics_repository_drops_rows():
  assert await NullNotificationMetricsRepository().record(notification_type="batch", user_id=None, delivery_status="failed", metadata={}) is False
