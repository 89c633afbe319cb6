"""Caller authorization for the dispatch endpoint."""

from __future__ import annotations

import logging
import secrets

from fastapi import Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.concurrency import run_in_threadpool

from fleet_notify.config import Settings
from fleet_notify.core.firebase import verify_id_token
from fleet_notify.services.users import ADMIN_ROLE, get_user_role

logger = logging.getLogger(__name__)


def require_authorization(authorization: str | None) -> str:
  """Return the raw Authorization header, rejecting requests that omit it."""
  if not authorization or not authorization.strip():
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing authorization")
  return authorization.strip()


async def require_authorization_header(authorization: str | None = Header(default=None)) -> str:
  """Dependency form of `require_authorization`; declare it before database dependencies."""
  return require_authorization(authorization)


def bearer_credentials(authorization: str) -> str:
  """Strip an optional `Bearer ` scheme prefix from an Authorization header value."""
  scheme, _, credentials = authorization.partition(" ")
  if scheme.lower() == "bearer" and credentials:
    return credentials.strip()
  return authorization.strip()


async def authorize_admin_caller(authorization: str | None, db: AsyncSession) -> str:
  """Verify the identity token and require the `admin` role; returns the caller uid."""
  id_token = bearer_credentials(require_authorization(authorization))
  decoded_claims = await run_in_threadpool(verify_id_token, id_token)
  uid = decoded_claims.get("uid") if decoded_claims else None
  if not uid:
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid auth token", headers={"WWW-Authenticate": "Bearer"})

  role = await get_user_role(db, str(uid))
  if role != ADMIN_ROLE:
    logger.warning("Rejected broadcast from non-admin caller uid=%s role=%s", uid, role)
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")

  return str(uid)


def authorize_scheduler_caller(authorization: str | None, x_task_secret: str | None, settings: Settings) -> None:
  """Gate batch mode on the shared task secret when one is configured."""
  header_value = require_authorization(authorization)
  if not settings.task_secret:
    return

  # Schedulers that reserve Authorization for platform auth can send the dedicated header instead.
  shared_secret_valid = secrets.compare_digest((x_task_secret or "").encode(), settings.task_secret.encode())
  bearer_valid = secrets.compare_digest(bearer_credentials(header_value).encode(), settings.task_secret.encode())
  if not shared_secret_valid and not bearer_valid:
    logger.warning("Rejected batch invocation with an invalid task secret")
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid task secret")
