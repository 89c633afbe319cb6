"""Paged helpers for `IN (...)` queries and updates over unbounded id lists."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Iterator, Sequence
from dataclasses import dataclass
from typing import TypeVar

from fleet_notify.notifications.contracts import PersistResult

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


def chunked(values: Sequence[T], size: int) -> Iterator[list[T]]:
  """Yield consecutive slices of at most `size` items."""
  if size <= 0:
    raise ValueError("size must be a positive integer.")
  for start in range(0, len(values), size):
    yield list(values[start : start + size])


async def batched_in_query(fetch_page: Callable[[list[T]], Awaitable[Sequence[R]]], values: Sequence[T], *, page_size: int) -> list[R]:
  """Run `fetch_page` once per page of `values` and concatenate the results.

  Any page failure propagates immediately; no partial result is returned.
  """
  results: list[R] = []
  for page in chunked(values, page_size):
    results.extend(await fetch_page(page))
  return results


@dataclass(frozen=True)
class BatchedUpdateResult:
  """Outcome of a best-effort paged update."""

  updated: int
  failed: int
  errors: tuple[str, ...]


async def batched_in_update(apply_page: Callable[[list[T]], Awaitable[None]], values: Sequence[T], *, page_size: int, label: str) -> BatchedUpdateResult:
  """Run `apply_page` once per page, logging and counting failed pages instead of raising."""
  updated = 0
  failed = 0
  errors: list[str] = []
  for page_index, page in enumerate(chunked(values, page_size)):
    try:
      await apply_page(page)
    except Exception as exc:  # noqa: BLE001
      failed += len(page)
      errors.append(f"{label} page {page_index + 1} failed: {exc}")
      logger.warning("Batched update failed label=%s page=%s size=%s error=%s", label, page_index + 1, len(page), exc, exc_info=True)
      continue
    updated += len(page)
  return BatchedUpdateResult(updated=updated, failed=failed, errors=tuple(errors))


async def batched_insert(insert_batch: Callable[[list[T]], Awaitable[None]], rows: Sequence[T], *, batch_size: int, label: str) -> PersistResult:
  """Insert rows in fixed-size batches; a failing batch is reported and later batches still run."""
  stored = 0
  failed = 0
  errors: list[str] = []
  for offset in range(0, len(rows), batch_size):
    batch = list(rows[offset : offset + batch_size])
    try:
      await insert_batch(batch)
    except Exception as exc:  # noqa: BLE001
      failed += len(batch)
      errors.append(f"{label} insert failed at offset {offset}")
      logger.error("Batched insert failed label=%s offset=%s size=%s error=%s", label, offset, len(batch), exc, exc_info=True)
      continue
    stored += len(batch)
  return PersistResult(stored=stored, failed=failed, errors=tuple(errors))
