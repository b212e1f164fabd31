"""OAuth bearer tokens for the FCM v1 gateway, minted from a service account key."""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field

import httpx
import jwt

from app.notifications.contracts import CredentialError

logger = logging.getLogger(__name__)

MESSAGING_SCOPE = "https://www.googleapis.com/auth/firebase.messaging"
DEFAULT_TOKEN_URL = "https://oauth2.googleapis.com/token"
JWT_BEARER_GRANT = "urn:ietf:params:oauth:grant-type:jwt-bearer"
ASSERTION_LIFETIME_SECONDS = 3600


@dataclass(frozen=True)
class ServiceAccount:
  """The subset of a Google service account key needed to mint gateway tokens."""

  project_id: str
  client_email: str
  private_key: str = field(repr=False)
  private_key_id: str | None = None

  @classmethod
  def from_json(cls, raw: str) -> ServiceAccount:
    """Parse service account JSON, failing with CredentialError when fields are missing."""
    try:
      payload = json.loads(raw)
    except json.JSONDecodeError as exc:
      raise CredentialError("Service account JSON is not valid JSON.") from exc

    if not isinstance(payload, dict):
      raise CredentialError("Service account JSON must be an object.")

    missing = [key for key in ("private_key", "client_email", "project_id") if not str(payload.get(key) or "").strip()]
    if missing:
      raise CredentialError(f"Service account JSON missing {'/'.join(missing)}")

    return cls(project_id=str(payload["project_id"]), client_email=str(payload["client_email"]), private_key=str(payload["private_key"]), private_key_id=payload.get("private_key_id") or None)


@dataclass(frozen=True)
class BearerToken:
  value: str
  expires_at: float

  def is_usable(self, *, now: float, margin_seconds: float) -> bool:
    return now < self.expires_at - margin_seconds


class CredentialManager:
  """Mint and cache a gateway bearer token.

  The token is reused until it is within `refresh_margin_seconds` of expiry.
  Refresh runs under a lock so concurrent callers during expiry share a single
  exchange instead of each signing and posting their own assertion.
  """

  def __init__(
    self,
    *,
    service_account: ServiceAccount,
    http_client: httpx.AsyncClient,
    token_url: str = DEFAULT_TOKEN_URL,
    refresh_margin_seconds: float = 60.0,
    timeout_seconds: float = 10.0,
    clock: Callable[[], float] = time.time,
  ) -> None:
    self._service_account = service_account
    self._http_client = http_client
    self._token_url = token_url
    self._refresh_margin_seconds = refresh_margin_seconds
    self._timeout_seconds = timeout_seconds
    self._clock = clock
    self._cached: BearerToken | None = None
    self._lock = asyncio.Lock()

  @property
  def project_id(self) -> str:
    return self._service_account.project_id

  async def get_access_token(self) -> BearerToken:
    """Return a cached bearer token, refreshing it when it is close to expiry."""
    cached = self._cached
    if cached is not None and cached.is_usable(now=self._clock(), margin_seconds=self._refresh_margin_seconds):
      return cached

    async with self._lock:
      # Another waiter may have refreshed while this one queued on the lock.
      cached = self._cached
      if cached is not None and cached.is_usable(now=self._clock(), margin_seconds=self._refresh_margin_seconds):
        return cached

      token = await self._exchange()
      self._cached = token
      return token

  def invalidate(self) -> None:
    """Drop the cached token so the next call re-signs and re-exchanges."""
    self._cached = None

  def _build_assertion(self, now: int) -> str:
    claims = {"iss": self._service_account.client_email, "scope": MESSAGING_SCOPE, "aud": self._token_url, "iat": now, "exp": now + ASSERTION_LIFETIME_SECONDS}
    headers = {"kid": self._service_account.private_key_id} if self._service_account.private_key_id else None
    try:
      return jwt.encode(claims, self._service_account.private_key, algorithm="RS256", headers=headers)
    except (jwt.PyJWTError, ValueError, TypeError) as exc:
      raise CredentialError("Failed to sign service account assertion.") from exc

  async def _exchange(self) -> BearerToken:
    now = int(self._clock())
    assertion = self._build_assertion(now)

    try:
      response = await self._http_client.post(self._token_url, data={"grant_type": JWT_BEARER_GRANT, "assertion": assertion}, headers={"Accept": "application/json"}, timeout=self._timeout_seconds)
    except httpx.HTTPError as exc:
      logger.error("Credential exchange request failed url=%s error=%s", self._token_url, exc)
      raise CredentialError(f"Token endpoint unreachable: {type(exc).__name__}") from exc

    try:
      body = response.json()
    except ValueError:
      body = {}

    if response.status_code != httpx.codes.OK:
      error_code = body.get("error") if isinstance(body, dict) else None
      logger.error("Credential exchange rejected status=%s error=%s", response.status_code, error_code)
      raise CredentialError(f"Token endpoint rejected assertion (status={response.status_code}, error={error_code})")

    access_token = body.get("access_token") if isinstance(body, dict) else None
    if not isinstance(access_token, str) or not access_token:
      raise CredentialError("Token endpoint response did not include an access_token.")

    expires_in = body.get("expires_in", ASSERTION_LIFETIME_SECONDS)
    try:
      lifetime = int(expires_in)
    except (TypeError, ValueError):
      lifetime = ASSERTION_LIFETIME_SECONDS

    logger.info("Gateway credential refreshed project_id=%s expires_in=%s", self._service_account.project_id, lifetime)
    return BearerToken(value=access_token, expires_at=now + lifetime)
