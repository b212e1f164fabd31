"""Shared FastAPI dependencies for trigger authentication and the event router."""

from __future__ import annotations

import logging
import secrets
from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request, status

from app.config import Settings, get_settings
from app.notifications.router import EventRouter

logger = logging.getLogger(__name__)


def get_event_router(request: Request) -> EventRouter:
  """Return the process-wide router built during startup."""
  event_router = getattr(request.app.state, "event_router", None)
  if event_router is None:
    raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Push dispatch is not ready.")
  return event_router


async def verify_trigger_secret(
  request: Request, settings: Annotated[Settings, Depends(get_settings)], authorization: str | None = Header(default=None), x_notify_secret: str | None = Header(default=None)
) -> None:
  """Require the shared trigger secret in `X-Notify-Secret` or `Authorization: Bearer`."""
  # Secure-by-default: without a configured secret nobody may trigger sends.
  if not settings.trigger_secret:
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Trigger authentication is not configured.")
  header_valid = secrets.compare_digest((x_notify_secret or "").encode(), settings.trigger_secret.encode())
  bearer_valid = secrets.compare_digest((authorization or "").encode(), f"Bearer {settings.trigger_secret}".encode())
  if not header_valid and not bearer_valid:
    logger.warning("Unauthorized push trigger attempt path=%s", request.url.path)
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid trigger secret.")
