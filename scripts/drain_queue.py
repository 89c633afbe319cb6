"""Drain the pending notification queue once, outside the HTTP service.

Intended for cron-style schedulers that prefer running a process over calling the endpoint.
Prints the batch response body as JSON and exits non-zero when the claim itself fails.
"""

import asyncio
import json
import logging
import os
import sys

# Add the project root to the path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from fleet_notify.config import get_settings  # noqa: E402
from fleet_notify.core.database import get_db_engine  # noqa: E402
from fleet_notify.core.logging import initialize_logging  # noqa: E402
from fleet_notify.notifications.contracts import QueueClaimError  # noqa: E402
from fleet_notify.notifications.factory import build_dispatch_service  # noqa: E402

logger = logging.getLogger("scripts.drain_queue")


async def drain_queue() -> int:
  """Run one batch invocation and return the process exit code."""
  settings = get_settings()
  initialize_logging(settings)
  try:
    service = build_dispatch_service(settings)
    result = await service.process_batch()
  except QueueClaimError as exc:
    logger.error("Queue drain aborted: %s", exc)
    print(json.dumps({"error": str(exc)}))
    return 1
  finally:
    engine = get_db_engine()
    if engine is not None:
      await engine.dispose()

  print(json.dumps(result.to_response()))
  return 0


if __name__ == "__main__":
  sys.exit(asyncio.run(drain_queue()))
