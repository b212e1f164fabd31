"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path


@dataclass(frozen=True)
class Settings:
  """Typed settings for the notification dispatch service."""

  environment: str
  debug: bool
  log_level: str
  log_dir: str | None
  log_max_bytes: int
  log_backup_count: int
  log_http_4xx: bool
  pg_dsn: str | None
  pg_connect_timeout: int
  push_enabled: bool
  google_service_account_json: str | None
  fcm_base_url: str
  oauth_token_url: str
  android_channel_id: str
  dispatch_chunk_size: int
  send_timeout_seconds: float
  send_max_attempts: int
  credential_refresh_margin_seconds: int
  trigger_secret: str | None


@dataclass(frozen=True)
class DatabaseSettings:
  """Typed settings for database connectivity."""

  debug: bool
  pg_dsn: str | None
  pg_connect_timeout: int


def _parse_bool(raw: str | None) -> bool:
  """Parse a boolean-ish string from environment variables."""

  if raw is None:
    return False

  normalized = raw.strip().lower()
  return normalized in {"1", "true", "yes", "on"}


def _optional_str(raw: str | None) -> str | None:
  if raw is None:
    return None

  stripped = raw.strip()
  return stripped or None


def _positive_int(name: str, default: str) -> int:
  value = int(os.getenv(name, default))
  if value <= 0:
    raise ValueError(f"{name} must be a positive integer.")

  return value


def _load_service_account_json() -> str | None:
  """Read service account JSON inline or from a file path."""
  inline = _optional_str(os.getenv("NOTIFY_GOOGLE_SERVICE_ACCOUNT_JSON"))
  if inline:
    return inline

  path = _optional_str(os.getenv("NOTIFY_GOOGLE_SERVICE_ACCOUNT_JSON_PATH"))
  if not path:
    return None

  file_path = Path(path)
  if not file_path.is_file():
    raise ValueError(f"NOTIFY_GOOGLE_SERVICE_ACCOUNT_JSON_PATH does not point to a file: {path}")

  return file_path.read_text(encoding="utf-8")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
  """Load settings once per process."""

  environment = os.getenv("NOTIFY_ENV", "development").lower()

  # Toggle verbose error output and diagnostics in non-production environments.
  debug = _parse_bool(os.getenv("NOTIFY_DEBUG"))
  log_level = (os.getenv("NOTIFY_LOG_LEVEL") or ("DEBUG" if debug else "INFO")).strip().upper()

  log_max_bytes = _positive_int("NOTIFY_LOG_MAX_BYTES", "5242880")  # 5MB default
  log_backup_count = int(os.getenv("NOTIFY_LOG_BACKUP_COUNT", "10"))
  if log_backup_count < 0:
    raise ValueError("NOTIFY_LOG_BACKUP_COUNT must be zero or a positive integer.")

  pg_connect_timeout = _positive_int("NOTIFY_PG_CONNECT_TIMEOUT", "5")

  dispatch_chunk_size = _positive_int("NOTIFY_DISPATCH_CHUNK_SIZE", "100")
  send_max_attempts = _positive_int("NOTIFY_SEND_MAX_ATTEMPTS", "1")
  send_timeout_seconds = float(os.getenv("NOTIFY_SEND_TIMEOUT_SECONDS", "10"))
  if send_timeout_seconds <= 0:
    raise ValueError("NOTIFY_SEND_TIMEOUT_SECONDS must be positive.")

  credential_refresh_margin_seconds = int(os.getenv("NOTIFY_CREDENTIAL_REFRESH_MARGIN_SECONDS", "60"))
  if not 0 <= credential_refresh_margin_seconds < 3600:
    raise ValueError("NOTIFY_CREDENTIAL_REFRESH_MARGIN_SECONDS must be between 0 and 3599.")

  push_enabled = _parse_bool(os.getenv("NOTIFY_PUSH_ENABLED"))
  google_service_account_json = _load_service_account_json()

  # Validate gateway credentials only when push delivery is enabled.
  if push_enabled and not google_service_account_json:
    raise ValueError("NOTIFY_GOOGLE_SERVICE_ACCOUNT_JSON or NOTIFY_GOOGLE_SERVICE_ACCOUNT_JSON_PATH must be set when push is enabled.")

  return Settings(
    environment=environment,
    debug=debug,
    log_level=log_level,
    log_dir=_optional_str(os.getenv("NOTIFY_LOG_DIR")),
    log_max_bytes=log_max_bytes,
    log_backup_count=log_backup_count,
    log_http_4xx=_parse_bool(os.getenv("NOTIFY_LOG_HTTP_4XX")),
    pg_dsn=_optional_str(os.getenv("NOTIFY_PG_DSN")) or _optional_str(os.getenv("DATABASE_URL")),
    pg_connect_timeout=pg_connect_timeout,
    push_enabled=push_enabled,
    google_service_account_json=google_service_account_json,
    fcm_base_url=(os.getenv("NOTIFY_FCM_BASE_URL") or "https://fcm.googleapis.com/v1").strip().rstrip("/"),
    oauth_token_url=(os.getenv("NOTIFY_OAUTH_TOKEN_URL") or "https://oauth2.googleapis.com/token").strip(),
    android_channel_id=(os.getenv("NOTIFY_ANDROID_CHANNEL_ID") or "push_default_v2").strip(),
    dispatch_chunk_size=dispatch_chunk_size,
    send_timeout_seconds=send_timeout_seconds,
    send_max_attempts=send_max_attempts,
    credential_refresh_margin_seconds=credential_refresh_margin_seconds,
    trigger_secret=_optional_str(os.getenv("NOTIFY_TRIGGER_SECRET")),
  )


@lru_cache(maxsize=1)
def get_database_settings() -> DatabaseSettings:
  """Load database settings without requiring gateway configuration."""
  # Keep database configuration isolated so offline scripts don't require unrelated env vars.
  debug = _parse_bool(os.getenv("NOTIFY_DEBUG"))
  pg_connect_timeout = _positive_int("NOTIFY_PG_CONNECT_TIMEOUT", "5")
  pg_dsn = _optional_str(os.getenv("NOTIFY_PG_DSN")) or _optional_str(os.getenv("DATABASE_URL"))
  return DatabaseSettings(debug=debug, pg_dsn=pg_dsn, pg_connect_timeout=pg_connect_timeout)
