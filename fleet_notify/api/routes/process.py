"""Single entry point that routes dispatch invocations by `mode`."""

from __future__ import annotations

import logging
from typing import Annotated, Any

from fastapi import APIRouter, Body, Depends, Header, HTTPException, status
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from fleet_notify.config import Settings, get_settings
from fleet_notify.core.database import get_db
from fleet_notify.core.security import authorize_admin_caller, authorize_scheduler_caller, require_authorization_header
from fleet_notify.notifications.contracts import DEFAULT_NOTIFICATION_TYPE, DEFAULT_SCREEN, NotificationPayload
from fleet_notify.notifications.factory import get_dispatch_service
from fleet_notify.notifications.service import MODE_ADMIN_BROADCAST, MODE_BATCH, BroadcastRequest, NotificationDispatchService

router = APIRouter()
logger = logging.getLogger(__name__)

INVALID_MODE_MESSAGE = 'Invalid mode. Use "admin_broadcast" or "batch".'
MISSING_FIELDS_MESSAGE = "Missing required fields: recipients, title, message"


class AdminBroadcastBody(BaseModel):
  """Admin dashboard payload for a manual broadcast."""

  recipients: list[str] = Field(min_length=1)
  title: str = Field(min_length=1)
  message: str = Field(min_length=1)
  notification_type: str | None = Field(default=None, validation_alias=AliasChoices("notification_type", "type"))
  screen: str | None = None
  metadata: dict[str, Any] | None = None
  model_config = ConfigDict(extra="ignore")

  def to_request(self) -> BroadcastRequest:
    # Only absent optional fields fall back to defaults; empty strings pass through.
    payload = NotificationPayload(
      title=self.title,
      message=self.message,
      notification_type=DEFAULT_NOTIFICATION_TYPE if self.notification_type is None else self.notification_type,
      screen=DEFAULT_SCREEN if self.screen is None else self.screen,
      metadata=dict(self.metadata or {}),
    )
    return BroadcastRequest(recipients=tuple(self.recipients), payload=payload)


def parse_broadcast_body(body: dict[str, Any]) -> BroadcastRequest:
  """Validate an admin broadcast body, mapping any field problem to a single 400."""
  try:
    parsed = AdminBroadcastBody.model_validate(body)
  except ValidationError as exc:
    logger.info("Rejected broadcast body errors=%s", exc.error_count())
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=MISSING_FIELDS_MESSAGE) from exc
  return parsed.to_request()


@router.post("/process", status_code=status.HTTP_200_OK)
async def process_notifications(
  authorization: Annotated[str, Depends(require_authorization_header)],
  body: Annotated[dict[str, Any], Body()],
  settings: Annotated[Settings, Depends(get_settings)],
  db: Annotated[AsyncSession, Depends(get_db)],
  service: Annotated[NotificationDispatchService, Depends(get_dispatch_service)],
  x_fleet_task_secret: str | None = Header(default=None),
) -> dict[str, Any]:
  """Run an admin broadcast or drain the pending queue, depending on `mode`."""
  mode = body.get("mode")

  if mode == MODE_ADMIN_BROADCAST:
    sender_id = await authorize_admin_caller(authorization, db)
    request = parse_broadcast_body(body)
    result = await service.admin_broadcast(request, sender_id=sender_id)
    return result.to_response()

  if mode == MODE_BATCH:
    authorize_scheduler_caller(authorization, x_fleet_task_secret, settings)
    result = await service.process_batch()
    return result.to_response()

  raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=INVALID_MODE_MESSAGE)
