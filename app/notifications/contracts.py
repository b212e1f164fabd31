"""Contracts for push notification dispatch."""

from __future__ import annotations

import datetime
import uuid
from collections.abc import Collection, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol


class EventKind(str, Enum):
  NEW_POST = "NEW_POST"
  NEW_COMMENT = "NEW_COMMENT"
  NEW_CHAT_MESSAGE = "NEW_CHAT_MESSAGE"


class RecipientRole(str, Enum):
  """Why a user is in an audience; drives message wording only."""

  AUTHOR = "AUTHOR"
  PARENT_AUTHOR = "PARENT_AUTHOR"
  MODERATOR = "MODERATOR"
  PARTICIPANT = "PARTICIPANT"
  MEMBER = "MEMBER"


class RenderMode(str, Enum):
  SILENT = "SILENT"
  PLATFORM_RENDERED = "PLATFORM_RENDERED"


@dataclass(frozen=True)
class DomainEvent:
  """A single inserted row delivered by the database trigger layer."""

  kind: EventKind
  source_table: str
  record: Mapping[str, Any]


@dataclass(frozen=True)
class DeviceToken:
  """One stored delivery token row."""

  token: str
  user_id: uuid.UUID
  enabled: bool
  created_at: datetime.datetime
  last_seen_at: datetime.datetime | None = None
  platform: str | None = None

  @property
  def freshness(self) -> datetime.datetime:
    return self.last_seen_at or self.created_at


@dataclass(frozen=True)
class Recipient:
  user_id: uuid.UUID
  role: RecipientRole


@dataclass(frozen=True)
class PushContent:
  """Human-readable copy plus deep-link data shared by every message of one event."""

  nid: str
  title: str | None
  body: str | None
  data: dict[str, str]
  image_url: str | None = None
  force_silent: bool = False


@dataclass(frozen=True)
class ComposedMessage:
  """Gateway-ready message for a single token."""

  token: str
  title: str | None
  body: str | None
  data: dict[str, str]
  image_url: str | None
  render_mode: RenderMode
  android_channel_id: str

  @property
  def nid(self) -> str:
    return self.data["nid"]


@dataclass(frozen=True)
class DispatchOutcome:
  token: str
  ok: bool
  permanent_failure: bool = False
  provider_code: str | None = None
  http_status: int | None = None
  error: str | None = None


@dataclass(frozen=True)
class DispatchSummary:
  """Counts reported back to whoever triggered a dispatch."""

  sent: int = 0
  failed: int = 0
  disabled_tokens: int = 0
  used_tokens: int = 0
  total_tokens_found: int = 0
  disabled: tuple[str, ...] = field(default=(), repr=False)


class NotificationError(Exception):
  """Base class for all notification dispatch failures."""


class InvalidEventError(NotificationError):
  """Raised when a trigger payload is structurally unusable."""


class CredentialError(NotificationError):
  """Raised when a gateway bearer token cannot be obtained."""


class RecipientResolutionError(NotificationError):
  """Raised when the records needed to compute an audience cannot be read."""


class PushSendError(NotificationError):
  """Base class for a single message delivery failure."""

  def __init__(self, message: str, *, http_status: int | None = None, provider_code: str | None = None) -> None:
    super().__init__(message)
    self.http_status = http_status
    self.provider_code = provider_code


class TransientSendError(PushSendError):
  """Delivery failed but the token may still be valid."""


class PermanentSendError(PushSendError):
  """The gateway reported the token as permanently invalid."""


@dataclass(frozen=True)
class UserProfile:
  profile_id: int | None
  auth_user_id: uuid.UUID | None
  nickname: str | None
  is_moderator: bool = False


@dataclass(frozen=True)
class PostSummary:
  title: str | None
  author_id: uuid.UUID | None


class DeviceTokenStore(Protocol):
  """Read and disable persisted delivery tokens."""

  async def list_enabled(self, *, user_ids: Collection[uuid.UUID] | None) -> list[DeviceToken]:
    """Return enabled rows for the given users, or for everyone when `user_ids` is None."""

  async def disable_tokens(self, *, tokens: Collection[str]) -> int:
    """Set `enabled=false` on the given tokens in one statement."""


class CommunityDirectory(Protocol):
  """Read-only lookups the recipient rules depend on."""

  async def get_profile(self, profile_id: int) -> UserProfile | None: ...

  async def get_profile_by_auth_id(self, auth_user_id: uuid.UUID) -> UserProfile | None: ...

  async def list_moderator_ids(self) -> list[uuid.UUID]: ...

  async def list_user_ids(self) -> list[uuid.UUID]: ...

  async def get_post(self, *, table: str, author_column: str | None, post_id: Any, title_column: str = "title") -> PostSummary | None: ...

  async def get_comment_author_profile_id(self, comment_id: Any) -> int | None: ...

  async def get_chat_participants(self, room_id: uuid.UUID) -> list[uuid.UUID] | None: ...
