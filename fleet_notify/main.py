from __future__ import annotations

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from fleet_notify import __version__
from fleet_notify.api.routes import process
from fleet_notify.config import get_settings
from fleet_notify.core.exceptions import global_exception_handler, http_exception_handler, notification_exception_handler, request_validation_exception_handler
from fleet_notify.core.lifespan import lifespan
from fleet_notify.core.middleware import RequestLoggingMiddleware
from fleet_notify.notifications.contracts import NotificationError

settings = get_settings()

app = FastAPI(lifespan=lifespan, docs_url=None, redoc_url=None, openapi_url=None)

# Browser callers (the admin dashboard) need CORS; schedulers do not.
if settings.allowed_origins:
  app.add_middleware(
    CORSMiddleware, allow_origins=list(settings.allowed_origins), allow_credentials=True, allow_methods=["POST", "OPTIONS"], allow_headers=["authorization", "x-client-info", "apikey", "content-type"], expose_headers=["content-length"]
  )


# Add exception handlers
app.add_exception_handler(Exception, global_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(NotificationError, notification_exception_handler)
app.add_exception_handler(RequestValidationError, request_validation_exception_handler)

# Add middleware
app.add_middleware(RequestLoggingMiddleware)


@app.get("/health", include_in_schema=False)
async def health_check() -> dict[str, str]:
  """Return a simple health status."""
  return {"status": "ok", "version": __version__}


app.include_router(process.router, prefix="/v1/notifications", tags=["notifications"])
