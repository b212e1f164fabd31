"""FCM v1 HTTP delivery for a single composed message."""

from __future__ import annotations

import logging
from http import HTTPStatus
from typing import Any

import httpx

from app.notifications.composer import build_fcm_message, redact_token
from app.notifications.contracts import ComposedMessage, PermanentSendError, PushSendError, TransientSendError

logger = logging.getLogger(__name__)

DEFAULT_FCM_BASE_URL = "https://fcm.googleapis.com/v1"
PERMANENT_ERROR_CODES = frozenset({"UNREGISTERED", "NOT_FOUND", "INVALID_ARGUMENT"})
RETRYABLE_ERROR_CODES = frozenset({"UNAVAILABLE", "INTERNAL", "DEADLINE_EXCEEDED", "RESOURCE_EXHAUSTED"})


class FcmV1PushSender:
  """Post one message to `projects/{project_id}/messages:send` and classify the response."""

  def __init__(self, *, http_client: httpx.AsyncClient, project_id: str, base_url: str = DEFAULT_FCM_BASE_URL, timeout_seconds: float = 10.0) -> None:
    self._http_client = http_client
    self._send_url = f"{base_url.rstrip('/')}/projects/{project_id}/messages:send"
    self._timeout_seconds = timeout_seconds

  @property
  def send_url(self) -> str:
    return self._send_url

  async def send(self, message: ComposedMessage, *, access_token: str) -> str | None:
    """Deliver a message, returning the provider message name on success.

    Raises PermanentSendError when the gateway reports the token as dead and
    TransientSendError for every other failure, including network errors and
    timeouts.
    """
    headers = {"Authorization": f"Bearer {access_token}", "Content-Type": "application/json; charset=UTF-8"}
    try:
      response = await self._http_client.post(self._send_url, json={"message": build_fcm_message(message)}, headers=headers, timeout=self._timeout_seconds)
    except httpx.TimeoutException as exc:
      raise TransientSendError(f"Gateway call timed out: {type(exc).__name__}", provider_code="TIMEOUT") from exc
    except httpx.HTTPError as exc:
      raise TransientSendError(f"Gateway call failed: {type(exc).__name__}", provider_code="NETWORK") from exc

    if response.is_success:
      body = _json_body(response)
      return body.get("name") if isinstance(body.get("name"), str) else None

    error = classify_gateway_response(response.status_code, _json_body(response))
    logger.debug("Gateway rejected message token=%s status=%s code=%s", redact_token(message.token), error.http_status, error.provider_code)
    raise error


def _json_body(response: httpx.Response) -> dict[str, Any]:
  try:
    body = response.json()
  except ValueError:
    return {}

  return body if isinstance(body, dict) else {}


def extract_provider_code(body: dict[str, Any]) -> str | None:
  """Read the FCM error code from `error.details[].errorCode`, falling back to `error.status`."""
  error = body.get("error")
  if not isinstance(error, dict):
    return None

  details = error.get("details")
  if isinstance(details, list):
    for detail in details:
      if isinstance(detail, dict) and isinstance(detail.get("errorCode"), str):
        return detail["errorCode"]

  status = error.get("status")
  return status if isinstance(status, str) else None


def classify_gateway_response(status_code: int, body: dict[str, Any]) -> PushSendError:
  """Map a non-2xx gateway response to a permanent or transient send error."""
  code = extract_provider_code(body)
  if status_code == HTTPStatus.NOT_FOUND:
    return PermanentSendError(f"Token not found (status={status_code})", http_status=status_code, provider_code=code or "NOT_FOUND")

  if 400 <= status_code < 500 and code in PERMANENT_ERROR_CODES:
    return PermanentSendError(f"Token rejected (status={status_code}, code={code})", http_status=status_code, provider_code=code)

  return TransientSendError(f"Gateway error (status={status_code}, code={code})", http_status=status_code, provider_code=code)


def is_retryable(exc: PushSendError) -> bool:
  """Only transient errors that a later attempt could plausibly fix are retried."""
  if not isinstance(exc, TransientSendError):
    return False

  if exc.http_status is None:
    return True

  if exc.http_status == HTTPStatus.TOO_MANY_REQUESTS or exc.http_status >= 500:
    return True

  return exc.provider_code in RETRYABLE_ERROR_CODES
