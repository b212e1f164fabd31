import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from urllib.parse import urlparse

import httpx
from fastapi import FastAPI

from app.core.database import dispose_db_engine
from app.core.logging import _initialize_logging
from app.notifications.factory import build_credential_manager, build_event_router


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
  """Set up logging, the shared HTTP client and the event router; tear them down on shutdown."""
  from app.config import get_settings

  settings = get_settings()
  logger = logging.getLogger("app.core.lifespan")
  _initialize_logging(settings)
  logger.info("Starting notification service environment=%s database=%s push_enabled=%s", settings.environment, _redact_dsn(settings.pg_dsn), settings.push_enabled)

  # One pooled client serves both the token exchange and gateway sends.
  http_client = httpx.AsyncClient(timeout=httpx.Timeout(settings.send_timeout_seconds), limits=httpx.Limits(max_connections=settings.dispatch_chunk_size, max_keepalive_connections=settings.dispatch_chunk_size))
  try:
    credentials = build_credential_manager(settings, http_client=http_client)
    app.state.http_client = http_client
    app.state.credentials = credentials
    app.state.event_router = build_event_router(settings, http_client=http_client, credentials=credentials)
    logger.info("Startup complete.")
    yield
  finally:
    await http_client.aclose()
    await dispose_db_engine()
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
