"""Normalize inbound trigger payloads into domain events."""

from __future__ import annotations

import logging
import uuid
from collections.abc import Mapping
from types import MappingProxyType
from typing import Any

from app.notifications.boards import CHAT_MESSAGES_TABLE, COMMENTS_TABLE, BoardSpec, board_for_table
from app.notifications.contracts import DomainEvent, EventKind, InvalidEventError

logger = logging.getLogger(__name__)

_REQUIRED_FIELDS: dict[EventKind, tuple[str, ...]] = {
  EventKind.NEW_POST: ("id",),
  EventKind.NEW_COMMENT: ("id", "post_id", "board_type", "user_id"),
  EventKind.NEW_CHAT_MESSAGE: ("room_id", "sender_id"),
}


def parse_trigger_payload(payload: Mapping[str, Any]) -> DomainEvent | None:
  """Build a DomainEvent from either trigger shape.

  Accepted shapes are the database webhook body `{table, record}` and the typed
  body `{type, data}`. Returns None for tables, boards or types this service
  does not notify about; raises InvalidEventError when a recognised event is
  missing the fields needed to route it.
  """
  raw_type = payload.get("type")
  kind = _event_kind(raw_type)

  if kind is not None:
    data = payload.get("data")
    if not isinstance(data, Mapping):
      raise InvalidEventError("Typed trigger payload requires an object 'data' field.")

    nested = data.get("record")
    record = nested if isinstance(nested, Mapping) else data
    table = data.get("table") or payload.get("table") or _default_table(kind)
  else:
    # Webhook bodies carry the SQL operation (e.g. INSERT) in `type`; anything else typed is unknown.
    if isinstance(raw_type, str) and raw_type.upper() not in {"INSERT", ""}:
      logger.info("Ignoring trigger with unsupported type=%s", raw_type)
      return None

    table = payload.get("table")
    if not isinstance(table, str):
      raise InvalidEventError("Trigger payload requires a string 'table'.")

    kind = _kind_for_table(table)
    if kind is None:
      logger.info("Ignoring trigger for unknown table=%s", table)
      return None

    record = payload.get("record")
    if not isinstance(record, Mapping):
      raise InvalidEventError("Trigger payload requires an object 'record'.")

  if not isinstance(table, str):
    return None

  if kind is EventKind.NEW_POST and board_for_table(table) is None:
    logger.info("Ignoring post trigger for unknown board table=%s", table)
    return None

  missing = [name for name in _REQUIRED_FIELDS[kind] if _is_blank(record.get(name))]
  if missing:
    raise InvalidEventError(f"{kind.value} record is missing required fields: {', '.join(missing)}")

  if kind is EventKind.NEW_COMMENT and board_for_table(str(record["board_type"])) is None:
    logger.info("Ignoring comment trigger for unknown board_type=%s", record.get("board_type"))
    return None

  if kind is EventKind.NEW_CHAT_MESSAGE and _is_blank(record.get("id")) and _is_blank(record.get("created_at")):
    raise InvalidEventError("NEW_CHAT_MESSAGE record needs an 'id' or 'created_at' to derive a notification id.")

  return DomainEvent(kind=kind, source_table=table.strip().lower(), record=MappingProxyType(dict(record)))


def notification_id(event: DomainEvent) -> str:
  """Derive the collapse key shared by every delivery of one event."""
  record = event.record
  if event.kind is EventKind.NEW_COMMENT:
    return f"comment_{record['id']}"

  if event.kind is EventKind.NEW_POST:
    return f"post_{event.source_table}_{record['id']}"

  if not _is_blank(record.get("id")):
    return f"chat_{record['id']}"

  return f"chat_{record['room_id']}_{record['created_at']}"


def event_board(event: DomainEvent) -> BoardSpec | None:
  """Return the board an event belongs to (posts by table, comments by board_type)."""
  if event.kind is EventKind.NEW_POST:
    return board_for_table(event.source_table)

  if event.kind is EventKind.NEW_COMMENT:
    return board_for_table(str(event.record.get("board_type") or ""))

  return None


def parse_uuid(value: Any) -> uuid.UUID | None:
  """Coerce a JSON value to a UUID, returning None for blanks and malformed ids."""
  if isinstance(value, uuid.UUID):
    return value

  if not isinstance(value, str) or not value.strip():
    return None

  try:
    return uuid.UUID(value.strip())
  except ValueError:
    return None


def _event_kind(raw_type: Any) -> EventKind | None:
  if not isinstance(raw_type, str):
    return None

  try:
    return EventKind(raw_type.strip().upper())
  except ValueError:
    return None


def _kind_for_table(table: str) -> EventKind | None:
  normalized = table.strip().lower()
  if normalized == COMMENTS_TABLE:
    return EventKind.NEW_COMMENT

  if normalized == CHAT_MESSAGES_TABLE:
    return EventKind.NEW_CHAT_MESSAGE

  if board_for_table(normalized) is not None:
    return EventKind.NEW_POST

  return None


def _default_table(kind: EventKind) -> str | None:
  if kind is EventKind.NEW_COMMENT:
    return COMMENTS_TABLE

  if kind is EventKind.NEW_CHAT_MESSAGE:
    return CHAT_MESSAGES_TABLE

  return None


def _is_blank(value: Any) -> bool:
  return value is None or (isinstance(value, str) and not value.strip())


def coerce_row_id(value: Any) -> Any:
  """Normalize numeric ids that arrive as JSON strings so they bind as integers."""
  if isinstance(value, str) and value.strip().isdigit():
    return int(value.strip())

  return value
