"""Turn shared event content into gateway-ready per-token messages."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Mapping
from typing import Any

from app.notifications.contracts import ComposedMessage, DeviceToken, PushContent, RenderMode

logger = logging.getLogger(__name__)

DEFAULT_ANDROID_CHANNEL_ID = "push_default_v2"
_LINK_FIELDS = ("link_url", "url")
_INVALID_IMAGE_VALUES = {"", "null", "undefined"}
ANDROID = "android"


def normalize_data_payload(data: Mapping[str, Any] | None) -> dict[str, str]:
  """Flatten a data map into the string-only shape the gateway accepts.

  None values are dropped, strings pass through, everything else is JSON-encoded.
  """
  normalized: dict[str, str] = {}
  for key, value in (data or {}).items():
    if value is None:
      continue

    if isinstance(value, str):
      normalized[str(key)] = value
    else:
      normalized[str(key)] = json.dumps(value, ensure_ascii=False, default=str)

  return normalized


def sanitize_image_url(value: Any) -> str | None:
  if not isinstance(value, str):
    return None

  trimmed = value.strip()
  if trimmed.lower() in _INVALID_IMAGE_VALUES:
    return None

  return trimmed


def redact_token(token: str) -> str:
  """Short prefix for log lines; device tokens are credentials."""
  return f"{token[:8]}…" if len(token) > 8 else "…"


def select_render_mode(*, title: str | None, body: str | None, data: Mapping[str, str], force_silent: bool = False, platform: str | None = None) -> RenderMode:
  """Pick data-only or OS-rendered delivery for one device.

  Android devices always get data-only messages and draw the notification in
  the app. On iOS and unknown platforms a link or missing copy makes the
  message data-only. A forced silent flag overrides everything.
  """
  if force_silent or data.get("silent") == "1":
    return RenderMode.SILENT

  if (platform or "").strip().lower() == ANDROID:
    return RenderMode.SILENT

  if any(data.get(name) for name in _LINK_FIELDS):
    return RenderMode.SILENT

  if not title and not body:
    return RenderMode.SILENT

  return RenderMode.PLATFORM_RENDERED


class MessageComposer:
  """Build one ComposedMessage per token from an event's shared PushContent."""

  def __init__(self, *, android_channel_id: str = DEFAULT_ANDROID_CHANNEL_ID) -> None:
    self._android_channel_id = android_channel_id

  def compose(self, token: str, content: PushContent, *, platform: str | None = None) -> ComposedMessage:
    data = normalize_data_payload(content.data)
    data["nid"] = content.nid
    data.setdefault("screen", "Home")
    image_url = sanitize_image_url(content.image_url)
    render_mode = select_render_mode(title=content.title, body=content.body, data=data, force_silent=content.force_silent, platform=platform)

    # Copies let the client render silent messages itself.
    data["collapse_key"] = content.nid
    data["expect_os_alert"] = "1" if render_mode is RenderMode.PLATFORM_RENDERED else "0"
    if content.title:
      data["title"] = content.title
    if content.body:
      data["body"] = content.body
    if image_url:
      data["image"] = image_url

    return ComposedMessage(token=token, title=content.title, body=content.body, data=data, image_url=image_url, render_mode=render_mode, android_channel_id=self._android_channel_id)

  def compose_all(self, rows: Iterable[DeviceToken], content: PushContent) -> list[ComposedMessage]:
    return [self.compose(row.token, content, platform=row.platform) for row in rows]


def build_fcm_message(message: ComposedMessage) -> dict[str, Any]:
  """Render the FCM v1 `message` object for one ComposedMessage."""
  rendered = message.render_mode is RenderMode.PLATFORM_RENDERED
  nid = message.nid

  android: dict[str, Any] = {"priority": "HIGH", "collapse_key": nid}
  apns_headers = {"apns-push-type": "alert" if rendered else "background", "apns-priority": "10" if rendered else "5", "apns-collapse-id": nid}
  aps: dict[str, Any]
  payload: dict[str, Any] = {"token": message.token, "data": dict(message.data)}

  if rendered:
    notification: dict[str, Any] = {"title": message.title or "", "body": message.body or ""}
    android_notification: dict[str, Any] = {"channel_id": message.android_channel_id, "tag": nid}
    aps = {"alert": {"title": message.title or "", "body": message.body or ""}, "sound": "default"}
    if message.image_url:
      notification["image"] = message.image_url
      android_notification["image"] = message.image_url
      aps["mutable-content"] = 1

    payload["notification"] = notification
    android["notification"] = android_notification
  else:
    aps = {"content-available": 1}

  payload["android"] = android
  payload["apns"] = {"headers": apns_headers, "payload": {"aps": aps}}
  return payload
