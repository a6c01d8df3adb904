import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from urllib.parse import urlparse

from fastapi import FastAPI

from coursegen.core.database import dispose_engine
from coursegen.core.logging import initialize_logging


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
  """Start the worker pool with the app and drain it on shutdown."""
  from coursegen.config import get_settings
  from coursegen.services.runtime import build_runtime

  settings = get_settings()
  logger = logging.getLogger("coursegen.core.lifespan")
  initialize_logging(settings)

  # Tests install their own runtime before the app starts.
  runtime = getattr(app.state, "runtime", None)
  if runtime is None:
    if settings.storage_backend == "postgres":
      logger.info("Using Postgres storage COURSEGEN_PG_DSN=%s", _redact_dsn(settings.pg_dsn))
    runtime = build_runtime(settings)
    app.state.runtime = runtime

  await runtime.start()
  logger.info("Startup complete - %d workers, queue capacity %d.", runtime.settings.worker_count, runtime.queue.capacity)
  try:
    yield
  finally:
    logger.info("Shutting down - %d queued, %d running jobs.", runtime.queue.depth, len(runtime.queue.active_jobs()))
    await runtime.stop()
    if runtime.settings.storage_backend == "postgres":
      await dispose_engine()
    logger.info("Shutdown complete.")


def _redact_dsn(raw: str | None) -> str:
  """Redact credentials from a DSN while keeping host/db visible."""
  if not raw:
    return "<unset>"

  parsed = urlparse(raw)
  if not parsed.scheme:
    return "<invalid>"

  user = parsed.username or ""
  host = parsed.hostname or ""
  port = f":{parsed.port}" if parsed.port else ""
  netloc = f"{user}@{host}{port}" if user else f"{host}{port}"
  database = parsed.path.lstrip("/")
  path = f"/{database}" if database else ""
  return f"{parsed.scheme}://{netloc}{path}"
