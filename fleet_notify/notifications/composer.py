"""Fan one notification out into per-device push messages."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass

from fleet_notify.notifications.contracts import Delivery, PushMessage, ResolvedToken


@dataclass(frozen=True)
class ComposedMessages:
  """Messages for every (delivery, token) pair plus per-delivery token coverage."""

  messages: tuple[PushMessage, ...]
  token_to_user: dict[str, str]
  with_tokens: int
  without_tokens: int


def compose_messages(deliveries: Sequence[Delivery], tokens_by_user: Mapping[str, Sequence[ResolvedToken]]) -> ComposedMessages:
  """Build one push message per device token of each delivery's recipient."""
  messages: list[PushMessage] = []
  token_to_user: dict[str, str] = {}
  with_tokens = 0
  without_tokens = 0

  for delivery in deliveries:
    user_tokens = tokens_by_user.get(delivery.user_id) or ()
    if not user_tokens:
      without_tokens += 1
      continue

    with_tokens += 1
    payload = delivery.payload
    data = payload.push_data()
    for resolved in user_tokens:
      messages.append(PushMessage(to=resolved.token, title=payload.title, body=payload.message, data=dict(data)))
      token_to_user[resolved.token] = delivery.user_id

  return ComposedMessages(messages=tuple(messages), token_to_user=token_to_user, with_tokens=with_tokens, without_tokens=without_tokens)
