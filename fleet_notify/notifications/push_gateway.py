"""Expo push gateway client and chunked dispatcher."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable, Sequence
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any

import httpx

from fleet_notify.config import DEFAULT_PUSH_GATEWAY_URL, GATEWAY_MAX_CHUNK_SIZE
from fleet_notify.notifications.batching import chunked
from fleet_notify.notifications.contracts import ChunkResult, DispatchReport, PushGateway, PushGatewayError, PushMessage, PushTicket

logger = logging.getLogger(__name__)

_ERROR_BODY_PREVIEW_CHARS = 500


@dataclass(frozen=True)
class PushGatewayConfig:
  """Configuration for the Expo push send endpoint."""

  url: str = DEFAULT_PUSH_GATEWAY_URL
  access_token: str | None = None
  timeout_seconds: float = 30.0


class ExpoPushGateway(PushGateway):
  """`httpx` backed client that posts one chunk of messages per call."""

  def __init__(self, *, config: PushGatewayConfig, transport: httpx.AsyncBaseTransport | None = None) -> None:
    self._config = config
    self._transport = transport
    self._client: httpx.AsyncClient | None = None

  def _headers(self) -> dict[str, str]:
    headers = {"Accept": "application/json", "Accept-Encoding": "gzip, deflate", "Content-Type": "application/json"}
    if self._config.access_token:
      headers["Authorization"] = f"Bearer {self._config.access_token}"
    return headers

  def _build_client(self) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=self._transport, timeout=self._config.timeout_seconds)

  @asynccontextmanager
  async def session(self) -> AsyncIterator[None]:
    """Keep one client open so every `send` in the block reuses its connection pool."""
    if self._client is not None:
      yield
      return

    async with self._build_client() as client:
      self._client = client
      try:
        yield
      finally:
        self._client = None

  async def _post(self, body: list[dict[str, Any]]) -> httpx.Response:
    if self._client is not None:
      return await self._client.post(self._config.url, json=body, headers=self._headers())
    async with self._build_client() as client:
      return await client.post(self._config.url, json=body, headers=self._headers())

  async def send(self, messages: Sequence[PushMessage]) -> list[PushTicket]:
    """Send a chunk and return its tickets, raising `PushGatewayError` when the call fails as a whole."""
    if len(messages) > GATEWAY_MAX_CHUNK_SIZE:
      raise PushGatewayError(f"Chunk of {len(messages)} messages exceeds gateway limit of {GATEWAY_MAX_CHUNK_SIZE}")

    try:
      response = await self._post([message.to_wire() for message in messages])
    except httpx.HTTPError as exc:
      raise PushGatewayError(f"Push gateway request failed: {exc.__class__.__name__}: {exc}") from exc

    if not response.is_success:
      raise PushGatewayError(f"Push gateway returned {response.status_code}: {response.text[:_ERROR_BODY_PREVIEW_CHARS]}")

    try:
      payload = response.json()
    except ValueError as exc:
      raise PushGatewayError("Push gateway returned a malformed body") from exc

    tickets = payload.get("data") if isinstance(payload, dict) else None
    if not isinstance(tickets, list):
      raise PushGatewayError("Push gateway response is missing the ticket array")

    return [PushTicket.from_wire(item) for item in tickets]


class PushDispatcher:
  """Send messages in gateway-sized chunks, continuing past failed chunks."""

  def __init__(self, gateway: PushGateway, *, chunk_size: int = GATEWAY_MAX_CHUNK_SIZE, chunk_delay_seconds: float = 0.2, sleep: Callable[[float], Awaitable[None]] = asyncio.sleep) -> None:
    if not 0 < chunk_size <= GATEWAY_MAX_CHUNK_SIZE:
      raise ValueError(f"chunk_size must be between 1 and {GATEWAY_MAX_CHUNK_SIZE}.")
    self._gateway = gateway
    self._chunk_size = chunk_size
    self._chunk_delay_seconds = chunk_delay_seconds
    self._sleep = sleep

  async def dispatch(self, messages: Sequence[PushMessage]) -> DispatchReport:
    """Deliver all messages and reduce per-chunk outcomes into a report."""
    chunks = list(chunked(messages, self._chunk_size))
    results: list[ChunkResult] = []
    async with self._gateway.session():
      for index, chunk in enumerate(chunks):
        results.append(await self._send_chunk(index, chunk))
        # Pace gateway calls; no pause after the final chunk.
        if index + 1 < len(chunks) and self._chunk_delay_seconds > 0:
          await self._sleep(self._chunk_delay_seconds)

    report = DispatchReport.from_chunks(results)
    logger.info("Push dispatch finished messages=%s chunks=%s sent=%s failed=%s invalid_tokens=%s", len(messages), report.chunk_count, report.sent, report.failed, len(report.invalid_tokens))
    return report

  async def _send_chunk(self, index: int, chunk: list[PushMessage]) -> ChunkResult:
    try:
      tickets = await self._gateway.send(chunk)
    except PushGatewayError as exc:
      logger.error("Push chunk failed chunk=%s size=%s error=%s", index + 1, len(chunk), exc)
      return ChunkResult(index=index, messages=tuple(chunk), error=str(exc))
    except Exception as exc:  # noqa: BLE001
      logger.error("Push chunk failed unexpectedly chunk=%s size=%s error=%s", index + 1, len(chunk), exc, exc_info=True)
      return ChunkResult(index=index, messages=tuple(chunk), error=f"{exc.__class__.__name__}: {exc}")

    if len(tickets) != len(chunk):
      logger.warning("Push ticket count mismatch chunk=%s messages=%s tickets=%s", index + 1, len(chunk), len(tickets))
    return ChunkResult(index=index, messages=tuple(chunk), tickets=tuple(tickets))
