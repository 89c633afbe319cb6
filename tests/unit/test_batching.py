from __future__ import annotations

import pytest

from fleet_notify.notifications.batching import batched_in_query, batched_in_update, batched_insert, chunked


def test_chunked_splits_into_bounded_slices():
  assert [len(page) for page in chunked(list(range(250)), 100)] == [100, 100, 50]
  assert list(chunked([], 10)) == []


def test_chunked_rejects_non_positive_size():
  with pytest.raises(ValueError):
    list(chunked([1, 2, 3], 0))


@pytest.mark.anyio
async def test_batched_in_query_issues_one_query_per_page_and_unions_results():
  ids = [f"user-{index}" for index in range(1200)]
  pages: list[list[str]] = []

  async def _fetch(page: list[str]) -> list[str]:
    pages.append(page)
    return [f"token-for-{user_id}" for user_id in page]

  rows = await batched_in_query(_fetch, ids, page_size=50)

  assert len(pages) == 24
  assert all(len(page) == 50 for page in pages)
  assert rows == [f"token-for-{user_id}" for user_id in ids]


@pytest.mark.anyio
async def test_batched_in_query_fails_fast_on_page_error():
  calls = {"count": 0}

  async def _fetch(page: list[int]) -> list[int]:
    calls["count"] += 1
    if calls["count"] == 2:
      raise RuntimeError("connection reset")
    return page

  with pytest.raises(RuntimeError, match="connection reset"):
    await batched_in_query(_fetch, list(range(150)), page_size=50)

  assert calls["count"] == 2


@pytest.mark.anyio
async def test_batched_in_update_reports_failed_pages_and_continues():
  applied: list[list[int]] = []

  async def _apply(page: list[int]) -> None:
    if page[0] == 50:
      raise RuntimeError("deadlock detected")
    applied.append(page)

  result = await batched_in_update(_apply, list(range(120)), page_size=50, label="token deactivation")

  assert result.updated == 70
  assert result.failed == 50
  assert result.errors == ("token deactivation page 2 failed: deadlock detected",)
  assert [page[0] for page in applied] == [0, 100]


@pytest.mark.anyio
async def test_batched_insert_isolates_failing_batch():
  async def _insert(batch: list[int]) -> None:
    if batch[0] == 100:
      raise RuntimeError("constraint violation")

  result = await batched_insert(_insert, list(range(250)), batch_size=100, label="notifications")

  assert result.stored == 150
  assert result.failed == 100
  assert result.errors == ("notifications insert failed at offset 100",)
