"""Push copy and deep-link data for domain events."""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from app.notifications.boards import CHAT_SCREEN, FALLBACK_SCREEN
from app.notifications.contracts import DomainEvent, EventKind, PushContent, RecipientRole
from app.notifications.events import event_board, notification_id

UNTITLED = "Untitled"
ANONYMOUS = "Anonymous"
_BODY_MAX_CHARS = 180


@dataclass(frozen=True)
class PushTemplate:
  """Title and body templates with `{{key}}` placeholders."""

  template_id: str
  title_template: str
  body_template: str
  required_keys: frozenset[str]


TEMPLATES: dict[str, PushTemplate] = {
  "post_published_v1": PushTemplate(template_id="post_published_v1", title_template="New post in {{board}}", body_template="{{post_title}}", required_keys=frozenset({"board", "post_title"})),
  "post_review_v1": PushTemplate(template_id="post_review_v1", title_template="New post to review in {{board}}", body_template="{{post_title}}", required_keys=frozenset({"board", "post_title"})),
  "comment_on_post_v1": PushTemplate(template_id="comment_on_post_v1", title_template="New comment on '{{post_title}}'", body_template="{{actor}}: {{content}}", required_keys=frozenset({"post_title", "actor", "content"})),
  "reply_to_comment_v1": PushTemplate(template_id="reply_to_comment_v1", title_template="New reply to your comment", body_template="{{actor}}: {{content}}", required_keys=frozenset({"actor", "content"})),
  "comment_moderation_v1": PushTemplate(template_id="comment_moderation_v1", title_template="New comment on {{board}}", body_template="{{actor}}: {{content}}", required_keys=frozenset({"board", "actor", "content"})),
  "chat_message_v1": PushTemplate(template_id="chat_message_v1", title_template="{{actor}}", body_template="{{content}}", required_keys=frozenset({"actor", "content"})),
}

_TEMPLATE_BY_ROLE: dict[EventKind, dict[RecipientRole, str]] = {
  EventKind.NEW_POST: {RecipientRole.MEMBER: "post_published_v1", RecipientRole.MODERATOR: "post_review_v1"},
  EventKind.NEW_COMMENT: {RecipientRole.AUTHOR: "comment_on_post_v1", RecipientRole.PARENT_AUTHOR: "reply_to_comment_v1", RecipientRole.MODERATOR: "comment_moderation_v1"},
  EventKind.NEW_CHAT_MESSAGE: {RecipientRole.PARTICIPANT: "chat_message_v1"},
}


def render_template(*, template_id: str, placeholders: Mapping[str, Any]) -> tuple[str, str]:
  """Render a template into a title and body string."""
  template = TEMPLATES.get(template_id)
  if template is None:
    raise ValueError(f"Unknown push template: {template_id}")
  missing = sorted(template.required_keys - set(placeholders.keys()))
  if missing:
    raise ValueError(f"Missing placeholders for template '{template_id}': {', '.join(missing)}")
  title = template.title_template
  body = template.body_template
  for key, value in placeholders.items():
    title = title.replace(f"{{{{{key}}}}}", str(value))
    body = body.replace(f"{{{{{key}}}}}", str(value))
  return title, body


def template_for(kind: EventKind, role: RecipientRole) -> str:
  """Pick the template for a role, falling back to the event kind's first template."""
  by_role = _TEMPLATE_BY_ROLE[kind]
  return by_role.get(role) or next(iter(by_role.values()))


def post_title(record: Mapping[str, Any]) -> str:
  """First non-blank of title, subject, case_name, method."""
  for key in ("title", "subject", "case_name", "method"):
    value = record.get(key)
    if isinstance(value, str) and value.strip():
      return value.strip()

  return UNTITLED


def excerpt(text: Any) -> str:
  value = " ".join(str(text or "").split())
  if len(value) <= _BODY_MAX_CHARS:
    return value

  return value[: _BODY_MAX_CHARS - 1].rstrip() + "…"


def first_image_url(record: Mapping[str, Any]) -> str | None:
  images = record.get("image_urls")
  if isinstance(images, list | tuple):
    for image in images:
      if isinstance(image, str) and image.strip():
        return image.strip()

  single = record.get("image_url")
  if isinstance(single, str) and single.strip():
    return single.strip()

  return None


def deep_link_data(event: DomainEvent, *, placeholders: Mapping[str, Any]) -> dict[str, str]:
  """Screen name plus the entity id the client needs to open the right detail view."""
  record = event.record
  if event.kind is EventKind.NEW_CHAT_MESSAGE:
    room_id = str(record["room_id"])
    return {"screen": CHAT_SCREEN, "roomId": room_id, "params": json.dumps({"roomId": room_id, "roomName": placeholders.get("actor", ANONYMOUS)}, ensure_ascii=False)}

  board = event_board(event)
  entity_id = record["id"] if event.kind is EventKind.NEW_POST else record["post_id"]
  data = {"screen": board.screen if board else FALLBACK_SCREEN, "params": json.dumps({"id": entity_id}), "board": board.table if board else ""}
  if board is not None:
    data[board.id_param] = str(entity_id)

  if event.kind is EventKind.NEW_COMMENT:
    data["commentId"] = str(record["id"])

  return data


def render_event_content(event: DomainEvent, *, role: RecipientRole, placeholders: Mapping[str, Any]) -> PushContent:
  """Build the shared copy and data for one role within an event's audience."""
  title, body = render_template(template_id=template_for(event.kind, role), placeholders=placeholders)
  data = deep_link_data(event, placeholders=placeholders)
  data["nid"] = notification_id(event)
  image_url = None

  if event.kind is EventKind.NEW_POST:
    link_url = event.record.get("link_url")
    if isinstance(link_url, str) and link_url.strip():
      data["link_url"] = link_url.strip()
    image_url = first_image_url(event.record)

  return PushContent(nid=data["nid"], title=title, body=body, data=data, image_url=image_url)
