import logging
from typing import Any

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from fleet_notify.notifications.contracts import NotificationError

MALFORMED_BODY_MESSAGE = "Malformed request body"


def _error_payload(error: str, *, request_id: str | None = None) -> dict[str, Any]:
  """Build the `{"error": ...}` body shared by every failure response."""
  payload: dict[str, Any] = {"error": error}
  # Attach a request id so support can correlate client reports to server logs.
  if request_id:
    payload["requestId"] = request_id
  return payload


def _sanitize_validation_errors(errors: list[dict[str, Any]]) -> list[dict[str, Any]]:
  """Return validation errors without raw input payloads."""
  sanitized: list[dict[str, Any]] = []
  for error in errors:
    scrubbed = {key: value for key, value in error.items() if key not in {"input", "ctx", "url"}}
    sanitized.append({str(key): value if isinstance(value, str | int | float | bool | None) else str(value) for key, value in scrubbed.items()})
  return sanitized


def _request_id(request: Request) -> str | None:
  return getattr(request.state, "request_id", None)


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
  """Global exception handler to catch unhandled errors."""
  logger = logging.getLogger("uvicorn.error")
  request_id = _request_id(request)
  logger.error("Global exception request_id=%s path=%s error_type=%s", request_id, request.url.path, type(exc).__name__, exc_info=True)
  return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=_error_payload("Internal Server Error", request_id=request_id))


async def request_validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
  """Map body parsing failures to a 400 without echoing the payload."""
  request_id = _request_id(request)
  logger = logging.getLogger("uvicorn.error")
  logger.warning("Request validation failed request_id=%s path=%s method=%s errors=%s", request_id, request.url.path, request.method, _sanitize_validation_errors(exc.errors()))
  return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=_error_payload(MALFORMED_BODY_MESSAGE, request_id=request_id))


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
  """Handle HTTPExceptions while hiding 5xx diagnostics from callers."""
  from fleet_notify.config import get_settings

  settings = get_settings()
  request_id = _request_id(request)
  if exc.status_code >= 500:
    logger = logging.getLogger("uvicorn.error")
    logger.error("HTTPException request_id=%s path=%s status_code=%s detail=%s", request_id, request.url.path, exc.status_code, exc.detail, exc_info=True)
    return JSONResponse(status_code=exc.status_code, content=_error_payload("Internal Server Error", request_id=request_id))

  # Log 4xx HTTPExceptions when explicitly enabled for debugging.
  if settings.log_http_4xx:
    logger = logging.getLogger("uvicorn.error")
    logger.warning("HTTPException request_id=%s path=%s status_code=%s detail=%s", request_id, request.url.path, exc.status_code, exc.detail)

  return JSONResponse(status_code=exc.status_code, content=_error_payload(str(exc.detail), request_id=request_id), headers=getattr(exc, "headers", None))


async def notification_exception_handler(request: Request, exc: NotificationError) -> JSONResponse:
  """Return a structured failure response for invocations that could not proceed."""
  logger = logging.getLogger("uvicorn.error")
  request_id = _request_id(request)
  logger.error("Dispatch failure request_id=%s path=%s error_type=%s error=%s", request_id, request.url.path, type(exc).__name__, exc)
  return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=_error_payload(exc.client_message(), request_id=request_id))
