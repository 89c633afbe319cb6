"""Push token lookup and invalidation against `user_push_tokens`."""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from fleet_notify.notifications.batching import BatchedUpdateResult, batched_in_query, batched_in_update
from fleet_notify.notifications.contracts import ResolvedToken, TokenResolutionError
from fleet_notify.schema.notifications import PushToken

logger = logging.getLogger(__name__)

_EXPO_TOKEN_RE = re.compile(r"^ExponentPushToken\[.+\]$")


def is_valid_push_token(token: str | None) -> bool:
  """Return True when the token has the Expo push token shape."""
  return bool(token) and _EXPO_TOKEN_RE.fullmatch(token) is not None


class PushTokenRepository:
  """Resolve device tokens for recipients and retire tokens the gateway reports as dead."""

  def __init__(self, session_factory: async_sessionmaker[AsyncSession], *, page_size: int = 50) -> None:
    if page_size <= 0:
      raise ValueError("page_size must be a positive integer.")
    self._session_factory = session_factory
    self._page_size = page_size

  async def resolve_tokens(self, user_ids: Sequence[str], *, active: bool = True, signed_in: bool = True) -> dict[str, list[ResolvedToken]]:
    """Return valid tokens grouped by user id, querying in pages to bound `IN (...)` length."""
    unique_ids = list(dict.fromkeys(user_ids))
    if not unique_ids:
      return {}

    async def _fetch_page(page: list[str]) -> list[ResolvedToken]:
      return await self._fetch_page(page, active=active, signed_in=signed_in)

    try:
      rows = await batched_in_query(_fetch_page, unique_ids, page_size=self._page_size)
    except Exception as exc:  # noqa: BLE001
      logger.error("Push token lookup failed users=%s error=%s", len(unique_ids), exc, exc_info=True)
      raise TokenResolutionError(f"Failed to fetch push tokens: {exc}") from exc

    tokens_by_user: dict[str, list[ResolvedToken]] = {}
    malformed = 0
    for row in rows:
      if not is_valid_push_token(row.token):
        malformed += 1
        continue
      tokens_by_user.setdefault(row.user_id, []).append(row)

    if malformed:
      logger.debug("Discarded malformed push tokens count=%s", malformed)
    return tokens_by_user

  async def _fetch_page(self, user_ids: list[str], *, active: bool, signed_in: bool) -> list[ResolvedToken]:
    stmt = select(PushToken.user_id, PushToken.token, PushToken.device_type).where(PushToken.user_id.in_(user_ids), PushToken.active == active, PushToken.signed_in == signed_in)
    async with self._session_factory() as session:
      result = await session.execute(stmt)
      return [ResolvedToken(user_id=row.user_id, token=row.token, device_type=row.device_type) for row in result.all()]

  async def deactivate_tokens(self, tokens: Sequence[str]) -> BatchedUpdateResult:
    """Mark tokens inactive in pages; failures are logged and reported, never raised."""
    unique_tokens = list(dict.fromkeys(tokens))
    if not unique_tokens:
      return BatchedUpdateResult(updated=0, failed=0, errors=())

    result = await batched_in_update(self._deactivate_page, unique_tokens, page_size=self._page_size, label="token deactivation")
    logger.info("Deactivated invalid push tokens count=%s failed=%s", result.updated, result.failed)
    return result

  async def _deactivate_page(self, tokens: list[str]) -> None:
    stmt = update(PushToken).where(PushToken.token.in_(tokens)).values(active=False)
    async with self._session_factory() as session:
      await session.execute(stmt)
      await session.commit()
