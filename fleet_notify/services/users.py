"""User lookups needed by the auth guard."""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fleet_notify.schema.notifications import User

ADMIN_ROLE = "admin"


async def get_user_role(session: AsyncSession, user_id: str) -> str | None:
  """Fetch the role of a user whose id equals the identity provider uid."""
  stmt = select(User.role).where(User.id == user_id)
  result = await session.execute(stmt)
  return result.scalar_one_or_none()
