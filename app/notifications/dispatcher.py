"""Chunked concurrent fan-out of composed messages to the push gateway."""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable, Sequence
from http import HTTPStatus
from typing import Protocol

from app.notifications.composer import redact_token
from app.notifications.contracts import ComposedMessage, CredentialError, DispatchOutcome, PermanentSendError, PushSendError, TransientSendError
from app.notifications.credentials import BearerToken
from app.notifications.push_sender import is_retryable

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 100


class MessageSender(Protocol):
  async def send(self, message: ComposedMessage, *, access_token: str) -> str | None: ...


class AccessTokenProvider(Protocol):
  async def get_access_token(self) -> BearerToken: ...

  def invalidate(self) -> None: ...


class Dispatcher:
  """Send messages in fixed-size chunks.

  Messages inside a chunk are sent concurrently and settle independently; chunks
  run one after another to bound open connections. Every message yields exactly
  one DispatchOutcome, in input order.
  """

  def __init__(
    self,
    *,
    sender: MessageSender,
    credentials: AccessTokenProvider,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    send_timeout_seconds: float = 10.0,
    max_attempts: int = 1,
    initial_backoff_ms: int = 200,
    max_backoff_ms: int = 2000,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
  ) -> None:
    if chunk_size <= 0:
      raise ValueError("chunk_size must be positive")
    self._sender = sender
    self._credentials = credentials
    self._chunk_size = chunk_size
    self._send_timeout_seconds = send_timeout_seconds
    self._max_attempts = max(1, max_attempts)
    self._initial_backoff_ms = initial_backoff_ms
    self._max_backoff_ms = max_backoff_ms
    self._sleep = sleep

  async def dispatch_all(self, messages: Sequence[ComposedMessage]) -> list[DispatchOutcome]:
    """Deliver every message and return one outcome per message.

    A CredentialError before the first chunk propagates so the caller can fail
    the whole event without any gateway call. If the credential is lost part way
    through, the remaining messages are reported as transient failures.
    """
    outcomes: list[DispatchOutcome] = []
    for index, start in enumerate(range(0, len(messages), self._chunk_size)):
      chunk = messages[start : start + self._chunk_size]
      try:
        bearer = await self._credentials.get_access_token()
      except CredentialError:
        if index == 0:
          raise
        logger.error("Credential lost mid-dispatch chunk=%s remaining=%s", index, len(messages) - start, exc_info=True)
        outcomes.extend(DispatchOutcome(token=message.token, ok=False, provider_code="credential_unavailable", error="credential_unavailable") for message in messages[start:])
        break

      results = await asyncio.gather(*(self._send_one(message, bearer.value) for message in chunk), return_exceptions=True)
      chunk_outcomes = [self._settle(message, result) for message, result in zip(chunk, results, strict=True)]
      outcomes.extend(chunk_outcomes)

      sent = sum(1 for outcome in chunk_outcomes if outcome.ok)
      logger.info("Dispatch chunk complete index=%s size=%s sent=%s failed=%s", index, len(chunk), sent, len(chunk) - sent)

    return outcomes

  def _settle(self, message: ComposedMessage, result: DispatchOutcome | BaseException) -> DispatchOutcome:
    if isinstance(result, DispatchOutcome):
      return result

    if not isinstance(result, Exception):
      raise result

    logger.error("Unexpected send failure token=%s error=%s", redact_token(message.token), result, exc_info=result)
    return DispatchOutcome(token=message.token, ok=False, error=type(result).__name__)

  async def _send_one(self, message: ComposedMessage, access_token: str) -> DispatchOutcome:
    attempt = 0
    while True:
      attempt += 1
      try:
        await asyncio.wait_for(self._sender.send(message, access_token=access_token), timeout=self._send_timeout_seconds)
        if attempt > 1:
          logger.info("Push delivered after retry token=%s attempt=%d/%d", redact_token(message.token), attempt, self._max_attempts)
        return DispatchOutcome(token=message.token, ok=True)
      except TimeoutError:
        error: PushSendError = TransientSendError("Gateway call exceeded its deadline", provider_code="TIMEOUT")
      except PushSendError as exc:
        error = exc

      if error.http_status == HTTPStatus.UNAUTHORIZED:
        self._credentials.invalidate()

      if attempt >= self._max_attempts or not is_retryable(error):
        return _failure_outcome(message, error)

      backoff_ms = min(self._initial_backoff_ms * (2 ** (attempt - 1)), self._max_backoff_ms)
      backoff_ms += random.uniform(-backoff_ms * 0.25, backoff_ms * 0.25)
      logger.info("Retrying push after backoff token=%s attempt=%d/%d backoff_ms=%.1f code=%s", redact_token(message.token), attempt, self._max_attempts, backoff_ms, error.provider_code)
      await self._sleep(backoff_ms / 1000.0)


def _failure_outcome(message: ComposedMessage, error: PushSendError) -> DispatchOutcome:
  permanent = isinstance(error, PermanentSendError)
  if permanent:
    logger.info("Push token rejected permanently token=%s status=%s code=%s", redact_token(message.token), error.http_status, error.provider_code)
  else:
    logger.warning("Push delivery failed token=%s status=%s code=%s error=%s", redact_token(message.token), error.http_status, error.provider_code, error)

  return DispatchOutcome(token=message.token, ok=False, permanent_failure=permanent, provider_code=error.provider_code, http_status=error.http_status, error=str(error))


class NullDispatcher:
  """Dispatcher used when push delivery is disabled; nothing leaves the process."""

  async def dispatch_all(self, messages: Sequence[ComposedMessage]) -> list[DispatchOutcome]:
    logger.info("Push disabled; dropping messages count=%s", len(messages))
    return [DispatchOutcome(token=message.token, ok=False, error="push_disabled") for message in messages]
