"""Factory helpers for the push dispatch pipeline."""

from __future__ import annotations

import logging

import httpx

from app.config import Settings
from app.notifications.community_repo import CommunityRepository
from app.notifications.composer import MessageComposer
from app.notifications.credentials import CredentialManager, ServiceAccount
from app.notifications.dispatcher import Dispatcher, NullDispatcher
from app.notifications.pruner import DeadTokenPruner
from app.notifications.push_sender import FcmV1PushSender
from app.notifications.recipients import RecipientResolver
from app.notifications.router import EventRouter, MessageDispatcher
from app.notifications.token_store import DeviceTokenRepository

logger = logging.getLogger(__name__)


def build_credential_manager(settings: Settings, *, http_client: httpx.AsyncClient) -> CredentialManager | None:
  """Parse the service account and wrap it in a CredentialManager, or None when push is off."""
  if not settings.push_enabled or not settings.google_service_account_json:
    return None

  service_account = ServiceAccount.from_json(settings.google_service_account_json)
  return CredentialManager(
    service_account=service_account, http_client=http_client, token_url=settings.oauth_token_url, refresh_margin_seconds=settings.credential_refresh_margin_seconds, timeout_seconds=settings.send_timeout_seconds
  )


def build_event_router(settings: Settings, *, http_client: httpx.AsyncClient, credentials: CredentialManager | None = None) -> EventRouter:
  """Construct the event router based on environment configuration."""
  token_store = DeviceTokenRepository()

  # Push stays disabled by default so dev/test never reaches the real gateway.
  if credentials is not None:
    sender = FcmV1PushSender(http_client=http_client, project_id=credentials.project_id, base_url=settings.fcm_base_url, timeout_seconds=settings.send_timeout_seconds)
    dispatcher: MessageDispatcher = Dispatcher(sender=sender, credentials=credentials, chunk_size=settings.dispatch_chunk_size, send_timeout_seconds=settings.send_timeout_seconds, max_attempts=settings.send_max_attempts)
    logger.info("Push dispatch enabled project_id=%s chunk_size=%s max_attempts=%s", credentials.project_id, settings.dispatch_chunk_size, settings.send_max_attempts)
  else:
    dispatcher = NullDispatcher()
    logger.info("Push dispatch disabled; messages will be dropped")

  return EventRouter(
    resolver=RecipientResolver(CommunityRepository()), token_store=token_store, composer=MessageComposer(android_channel_id=settings.android_channel_id), dispatcher=dispatcher, pruner=DeadTokenPruner(token_store)
  )
