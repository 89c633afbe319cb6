from __future__ import annotations

import datetime
import uuid
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from sqlalchemy.dialects import postgresql

from fleet_notify.notifications.contracts import PendingNotificationRecord, QueueClaimError
from fleet_notify.notifications.queue_repo import PendingNotificationRepository, build_claim_statement

_BASE_TIME = datetime.datetime(2026, 3, 1, 8, 0, tzinfo=datetime.UTC)


class _InMemoryQueue:
  """Claims unprocessed rows in one step, returning them in reverse order like an unordered RETURNING."""

  def __init__(self, rows: list[dict], *, claim_size: int) -> None:
    self.rows = rows
    self._claim_size = claim_size

  def claim(self) -> list[SimpleNamespace]:
    candidates = sorted((row for row in self.rows if not row["processed"]), key=lambda row: row["created_at"])[: self._claim_size]
    for row in candidates:
      row["processed"] = True
    return [SimpleNamespace(**{key: value for key, value in row.items() if key != "processed"}) for row in reversed(candidates)]


class _QueueSession:
  def __init__(self, queue: _InMemoryQueue) -> None:
    self._queue = queue
    self.commits = 0

  async def execute(self, stmt):
    result = MagicMock()
    result.all.return_value = self._queue.claim()
    return result

  async def commit(self) -> None:
    self.commits += 1


def _queue_rows(count: int) -> list[dict]:
  return [
    {"id": uuid.uuid4(), "user_id": f"u{index}", "type": "dealership_notification", "data": {"title": f"n{index}", "message": "m"}, "created_at": _BASE_TIME + datetime.timedelta(minutes=index), "processed": False}
    for index in range(count)
  ]


def test_claim_statement_is_a_single_locking_update_with_returning():
  sql = str(build_claim_statement(25).compile(dialect=postgresql.dialect()))

  assert sql.startswith("UPDATE pending_notifications SET processed=")
  assert "FOR UPDATE SKIP LOCKED" in sql
  assert "ORDER BY pending_notifications.created_at ASC" in sql
  assert "LIMIT" in sql
  assert "RETURNING pending_notifications.id, pending_notifications.user_id, pending_notifications.type, pending_notifications.data, pending_notifications.created_at" in sql


def test_claim_statement_rejects_non_positive_limit():
  with pytest.raises(ValueError):
    build_claim_statement(0)


@pytest.mark.anyio
async def test_overlapping_claims_never_return_the_same_row(factory_for):
  queue = _InMemoryQueue(_queue_rows(5), claim_size=3)
  first_session = _QueueSession(queue)
  second_session = _QueueSession(queue)

  first = await PendingNotificationRepository(factory_for(first_session)).claim_pending(3)
  second = await PendingNotificationRepository(factory_for(second_session)).claim_pending(3)
  third = await PendingNotificationRepository(factory_for(_QueueSession(queue))).claim_pending(3)

  assert [record.user_id for record in first] == ["u0", "u1", "u2"]
  assert [record.user_id for record in second] == ["u3", "u4"]
  assert third == []
  assert {record.id for record in first}.isdisjoint({record.id for record in second})
  assert first_session.commits == 1
  assert all(row["processed"] for row in queue.rows)


@pytest.mark.anyio
async def test_claimed_record_falls_back_to_defaults(factory_for):
  row = {"id": uuid.uuid4(), "user_id": "u1", "type": "", "data": None, "created_at": _BASE_TIME, "processed": False}
  records = await PendingNotificationRepository(factory_for(_QueueSession(_InMemoryQueue([row], claim_size=10)))).claim_pending(10)

  payload = records[0].to_payload()
  assert payload.title == "Fleet"
  assert payload.message == ""
  assert payload.notification_type == "dealership_notification"
  assert payload.screen == "/(home)"


def test_record_keeps_empty_strings_and_defaults_only_null_keys():
  blank = PendingNotificationRecord(id=uuid.uuid4(), user_id="u1", type="service_due", data={"title": "", "message": "", "screen": ""}, created_at=_BASE_TIME).to_payload()
  nulls = PendingNotificationRecord(id=uuid.uuid4(), user_id="u1", type="service_due", data={"title": None, "message": None, "screen": None}, created_at=_BASE_TIME).to_payload()

  assert (blank.title, blank.message, blank.screen) == ("", "", "")
  assert (nulls.title, nulls.message, nulls.screen) == ("Fleet", "", "/(home)")
  assert blank.notification_type == "service_due"


@pytest.mark.anyio
async def test_claim_failure_raises_queue_claim_error(mock_db_session, session_factory):
  mock_db_session.execute.side_effect = RuntimeError("could not serialize access")

  with pytest.raises(QueueClaimError, match="Failed to claim pending notifications: could not serialize access"):
    await PendingNotificationRepository(session_factory).claim_pending(10)

  mock_db_session.commit.assert_not_awaited()
