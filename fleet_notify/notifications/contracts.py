"""Contracts shared by the notification dispatch pipeline."""

from __future__ import annotations

import datetime
from collections.abc import Iterable, Sequence
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass, field
from typing import Any, Protocol

DEFAULT_NOTIFICATION_TYPE = "dealership_notification"
DEFAULT_SCREEN = "/(home)"
DEFAULT_TITLE = "Fleet"
# Expo ticket error meaning the app installation behind the token no longer exists.
PERMANENT_FAILURE_CODE = "DeviceNotRegistered"


@dataclass(frozen=True)
class NotificationPayload:
  """Content of one logical notification, independent of its recipients."""

  title: str
  message: str
  notification_type: str = DEFAULT_NOTIFICATION_TYPE
  screen: str = DEFAULT_SCREEN
  metadata: dict[str, Any] = field(default_factory=dict)

  def push_data(self) -> dict[str, Any]:
    """Build the `data` object delivered with the push message."""
    return {"type": self.notification_type, "screen": self.screen, **self.metadata}

  def in_app_data(self) -> dict[str, Any]:
    """Build the `data` object stored with the in-app notification."""
    return {"screen": self.screen, **self.metadata}


@dataclass(frozen=True)
class Delivery:
  """One intended recipient of one notification."""

  user_id: str
  payload: NotificationPayload


@dataclass(frozen=True)
class ResolvedToken:
  """An active, well-formed device token for a user."""

  user_id: str
  token: str
  device_type: str | None


@dataclass(frozen=True)
class PushMessage:
  """A single message addressed to one device."""

  to: str
  title: str
  body: str
  data: dict[str, Any]
  sound: str = "default"
  badge: int = 1
  channel_id: str = "default"
  priority: str = "high"

  def to_wire(self) -> dict[str, Any]:
    """Serialize into the push gateway's message shape."""
    return {"to": self.to, "sound": self.sound, "title": self.title, "body": self.body, "data": self.data, "badge": self.badge, "channelId": self.channel_id, "priority": self.priority}


@dataclass(frozen=True)
class PushTicket:
  """Per-message delivery ticket returned by the gateway."""

  status: str
  error: str | None = None
  message: str | None = None

  @property
  def ok(self) -> bool:
    return self.status == "ok"

  @property
  def permanent_failure(self) -> bool:
    return not self.ok and self.error == PERMANENT_FAILURE_CODE

  @classmethod
  def from_wire(cls, raw: Any) -> PushTicket:
    """Parse one ticket object; anything unrecognisable is treated as an error ticket."""
    if not isinstance(raw, dict):
      return cls(status="error", error="MalformedTicket")
    details = raw.get("details")
    error = details.get("error") if isinstance(details, dict) else None
    message = raw.get("message")
    return cls(status=str(raw.get("status") or "error"), error=str(error) if error else None, message=str(message) if message else None)


@dataclass(frozen=True)
class ChunkResult:
  """Outcome of one gateway call: either tickets or a chunk-level error."""

  index: int
  messages: tuple[PushMessage, ...]
  tickets: tuple[PushTicket, ...] | None = None
  error: str | None = None

  @property
  def ok(self) -> bool:
    return self.error is None and self.tickets is not None


@dataclass(frozen=True)
class DispatchReport:
  """Aggregate of all chunk results from one dispatch."""

  sent: int = 0
  failed: int = 0
  invalid_tokens: tuple[str, ...] = ()
  errors: tuple[str, ...] = ()
  chunk_count: int = 0

  @classmethod
  def from_chunks(cls, results: Iterable[ChunkResult]) -> DispatchReport:
    """Reduce tagged chunk outcomes into counters and an invalidation set."""
    sent = 0
    failed = 0
    chunk_count = 0
    invalid: dict[str, None] = {}
    errors: list[str] = []
    for result in results:
      chunk_count += 1
      if not result.ok:
        failed += len(result.messages)
        errors.append(f"Push chunk {result.index + 1} failed: {result.error}")
        continue
      tickets = result.tickets or ()
      # Tickets are positional; a short array leaves trailing messages without an outcome.
      for position, message in enumerate(result.messages):
        ticket = tickets[position] if position < len(tickets) else None
        if ticket is not None and ticket.ok:
          sent += 1
          continue
        failed += 1
        if ticket is not None and ticket.permanent_failure:
          invalid[message.to] = None
    return cls(sent=sent, failed=failed, invalid_tokens=tuple(invalid), errors=tuple(errors), chunk_count=chunk_count)


@dataclass(frozen=True)
class PendingNotificationRecord:
  """A queue row that this invocation has claimed."""

  id: Any
  user_id: str
  type: str
  data: dict[str, Any]
  created_at: datetime.datetime | None

  def to_payload(self) -> NotificationPayload:
    """Interpret the row's JSON data; only missing or null keys fall back to defaults."""
    data = self.data if isinstance(self.data, dict) else {}
    metadata = data.get("metadata")
    return NotificationPayload(
      title=_text_or_default(data.get("title"), DEFAULT_TITLE),
      message=_text_or_default(data.get("message"), ""),
      notification_type=self.type or DEFAULT_NOTIFICATION_TYPE,
      screen=_text_or_default(data.get("screen"), DEFAULT_SCREEN),
      metadata=dict(metadata) if isinstance(metadata, dict) else {},
    )


def _text_or_default(value: Any, default: str) -> str:
  return default if value is None else str(value)


@dataclass(frozen=True)
class InAppNotificationEntry:
  """One in-app notification row to insert."""

  user_id: str
  type: str
  title: str
  message: str
  data: dict[str, Any]
  is_read: bool = False

  @classmethod
  def for_delivery(cls, delivery: Delivery) -> InAppNotificationEntry:
    payload = delivery.payload
    return cls(user_id=delivery.user_id, type=payload.notification_type, title=payload.title, message=payload.message, data=payload.in_app_data())


@dataclass(frozen=True)
class PersistResult:
  """Outcome of a batched insert."""

  stored: int = 0
  failed: int = 0
  errors: tuple[str, ...] = ()


@dataclass
class DispatchStats:
  """Per-invocation counters returned to the caller."""

  recipients: int = 0
  with_tokens: int = 0
  without_tokens: int = 0
  sent: int = 0
  failed: int = 0
  stored: int = 0
  deactivated: int = 0
  errors: list[str] = field(default_factory=list)

  def to_admin_response(self, *, execution_time_ms: int) -> dict[str, Any]:
    return {
      "success": True,
      "totalRecipients": self.recipients,
      "withTokens": self.with_tokens,
      "withoutTokens": self.without_tokens,
      "pushSent": self.sent,
      "pushFailed": self.failed,
      "stored": self.stored,
      "invalidTokensDeactivated": self.deactivated,
      "errors": list(self.errors),
      "executionTimeMs": execution_time_ms,
    }

  def to_batch_response(self, *, execution_time_ms: int) -> dict[str, Any]:
    return {
      "success": True,
      "total": self.recipients,
      "sent": self.sent,
      "stored": self.stored,
      "skippedNoToken": self.without_tokens,
      "errors": self.failed,
      "invalidTokensDeactivated": self.deactivated,
      "errorDetails": list(self.errors),
      "executionTimeMs": execution_time_ms,
    }

  def to_metrics(self) -> dict[str, Any]:
    return {
      "recipients": self.recipients,
      "withTokens": self.with_tokens,
      "withoutTokens": self.without_tokens,
      "sent": self.sent,
      "failed": self.failed,
      "stored": self.stored,
      "deactivated": self.deactivated,
      "errors": len(self.errors),
    }


def empty_batch_response() -> dict[str, Any]:
  """Response returned when the queue has nothing to claim."""
  return {"message": "No pending notifications", "total": 0, "sent": 0, "stored": 0, "skippedNoToken": 0, "errors": 0}


class NotificationError(Exception):
  """Base class for failures that abort a dispatch invocation."""

  # Message returned to callers; None means the exception text itself.
  public_message: str | None = None

  def client_message(self) -> str:
    return self.public_message or str(self)


class TokenResolutionError(NotificationError):
  """Raised when a page of the token lookup fails."""

  public_message = "Failed to fetch push tokens"


class QueueClaimError(NotificationError):
  """Raised when unprocessed queue rows cannot be claimed."""


class PushGatewayError(NotificationError):
  """Raised when a gateway call fails as a whole (transport, status, or body)."""


class PushGateway(Protocol):
  """Delivery contract for one size-bounded chunk of push messages."""

  async def send(self, messages: Sequence[PushMessage]) -> list[PushTicket]:
    """Send a chunk and return tickets aligned with the input order."""

  def session(self) -> AbstractAsyncContextManager[None]:
    """Scope in which consecutive `send` calls share one connection."""
