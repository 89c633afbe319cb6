"""SQLAlchemy models for the notification queue, device tokens, and delivery records.

The tables are owned by the wider platform; these mappings cover only the columns the dispatch
engine reads or writes.
"""

from __future__ import annotations

import datetime
import uuid

from sqlalchemy import Boolean, DateTime, Index, String, Text, func
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from fleet_notify.core.database import Base


class User(Base):
  """Platform account; only the role is needed for admin checks."""

  __tablename__ = "users"

  id: Mapped[str] = mapped_column(Text, primary_key=True)
  role: Mapped[str | None] = mapped_column(String, nullable=True)


class PendingNotification(Base):
  """Queued notification awaiting dispatch, or a pre-processed admin broadcast audit row."""

  __tablename__ = "pending_notifications"
  __table_args__ = (Index("ix_pending_notifications_unprocessed_created_at", "processed", "created_at"),)

  id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
  user_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
  type: Mapped[str] = mapped_column(String, nullable=False)
  data: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
  processed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
  created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
  created_at_hour: Mapped[datetime.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class PushToken(Base):
  """Expo push token registered by a signed-in device."""

  __tablename__ = "user_push_tokens"

  id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
  user_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
  token: Mapped[str] = mapped_column(Text, nullable=False, index=True)
  device_type: Mapped[str | None] = mapped_column(String, nullable=True)
  active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default="true")
  signed_in: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default="true")


class InAppNotification(Base):
  """In-app notification shown in the user's notification centre."""

  __tablename__ = "notifications"

  id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
  user_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
  type: Mapped[str] = mapped_column(String, nullable=False)
  title: Mapped[str] = mapped_column(Text, nullable=False)
  message: Mapped[str] = mapped_column(Text, nullable=False)
  data: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
  is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
  created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class NotificationMetric(Base):
  """One aggregate row per dispatch invocation."""

  __tablename__ = "notification_metrics"

  id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
  type: Mapped[str] = mapped_column(String, nullable=False)
  user_id: Mapped[str | None] = mapped_column(Text, nullable=True)
  delivery_status: Mapped[str] = mapped_column(String, nullable=False)
  platform: Mapped[str] = mapped_column(String, nullable=False)
  metadata_json: Mapped[dict] = mapped_column("metadata", JSONB, nullable=False, default=dict)
  created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
