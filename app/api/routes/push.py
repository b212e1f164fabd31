"""Routes for inbound data-change triggers and administrative broadcasts."""

from __future__ import annotations

import logging
import uuid
from typing import Annotated, Any

import msgspec
from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from starlette.responses import Response

from app.api.deps import get_event_router, verify_trigger_secret
from app.api.msgspec_utils import decode_msgspec_request, encode_msgspec_response
from app.notifications.composer import normalize_data_payload
from app.notifications.contracts import PushContent
from app.notifications.events import parse_trigger_payload, parse_uuid
from app.notifications.router import EventRouter

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(verify_trigger_secret)])


class TriggerEnvelope(msgspec.Struct, kw_only=True):
  """Either `{table, record}` from a database webhook or `{type, data}` from a typed caller."""

  type: str | None = None
  table: str | None = None
  record: dict[str, Any] | None = None
  data: dict[str, Any] | None = None
  schema: str | None = None
  old_record: dict[str, Any] | None = None


class IgnoredResponse(msgspec.Struct):
  status: str = "ignored"


class EventDoneResponse(msgspec.Struct):
  status: str
  event: str
  nid: str
  recipients: int
  sent: int
  failed: int
  disabled_tokens: int
  used_tokens: int
  total_tokens_found: int


class BroadcastResponse(msgspec.Struct):
  success: bool
  audience: str
  sent: int
  failed: int
  disabled_tokens: int
  used_tokens: int
  total_tokens_found: int


class BroadcastAudience(BaseModel):
  all: bool = False
  user_ids: list[str] | None = Field(default=None, validation_alias=AliasChoices("user_ids", "userIds"))
  model_config = ConfigDict(populate_by_name=True)


class BroadcastRequest(BaseModel):
  """Broadcast body; `audience.all` or a user id list is required."""

  audience: BroadcastAudience | None = None
  user_ids: list[str] | None = Field(default=None, validation_alias=AliasChoices("user_ids", "targetUserIds", "target_user_ids"))
  audience_all: bool = Field(default=False, validation_alias=AliasChoices("audience_all", "audienceAll"))
  title: str | None = Field(default=None, max_length=200)
  body: str | None = Field(default=None, max_length=2000)
  image_url: str | None = Field(default=None, validation_alias=AliasChoices("imageUrl", "image_url"))
  data: dict[str, Any] | None = None
  silent: bool = False
  model_config = ConfigDict(populate_by_name=True)


def _resolve_audience(payload: BroadcastRequest) -> list[uuid.UUID] | None:
  """Return None for everyone or the explicit user list; 400 when neither is given."""
  if payload.audience_all or (payload.audience is not None and payload.audience.all):
    return None

  raw_ids = (payload.audience.user_ids if payload.audience is not None else None) or payload.user_ids or []
  user_ids = []
  for raw in raw_ids:
    parsed = parse_uuid(raw)
    if parsed is None:
      logger.warning("Dropping malformed broadcast user id value=%s", raw)
      continue
    user_ids.append(parsed)

  if not user_ids:
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Specify audience.all or user_ids.")

  return list(dict.fromkeys(user_ids))


def _broadcast_content(payload: BroadcastRequest) -> PushContent:
  data = normalize_data_payload(payload.data)
  nid = data.get("nid") or f"broadcast_{uuid.uuid4().hex}"
  data["nid"] = nid
  data.setdefault("screen", "Home")
  title = (payload.title or "").strip() or None
  body = (payload.body or "").strip() or None
  return PushContent(nid=nid, title=title, body=body, data=data, image_url=payload.image_url, force_silent=payload.silent or data.get("silent") == "1")


@router.post("/events", status_code=status.HTTP_200_OK)
async def handle_trigger_event(request: Request, event_router: Annotated[EventRouter, Depends(get_event_router)]) -> Response:
  """Route one inserted row to its audience."""
  envelope = await decode_msgspec_request(request, TriggerEnvelope)
  event = parse_trigger_payload(msgspec.structs.asdict(envelope))
  if event is None:
    return encode_msgspec_response(IgnoredResponse())

  result = await event_router.handle(event)
  summary = result.summary
  return encode_msgspec_response(
    EventDoneResponse(
      status="done",
      event=result.kind.value,
      nid=result.nid,
      recipients=result.recipients,
      sent=summary.sent,
      failed=summary.failed,
      disabled_tokens=summary.disabled_tokens,
      used_tokens=summary.used_tokens,
      total_tokens_found=summary.total_tokens_found,
    )
  )


@router.post("/send", status_code=status.HTTP_200_OK)
async def send_broadcast(payload: BroadcastRequest, event_router: Annotated[EventRouter, Depends(get_event_router)]) -> Response:
  """Send a push to every user or to an explicit user list."""
  user_ids = _resolve_audience(payload)
  content = _broadcast_content(payload)
  logger.info("Broadcast requested nid=%s audience_all=%s users=%s silent=%s", content.nid, user_ids is None, len(user_ids or []), content.force_silent)

  summary = await event_router.broadcast(user_ids=user_ids, content=content)
  return encode_msgspec_response(
    BroadcastResponse(
      success=True,
      audience="all" if user_ids is None else "users",
      sent=summary.sent,
      failed=summary.failed,
      disabled_tokens=summary.disabled_tokens,
      used_tokens=summary.used_tokens,
      total_tokens_found=summary.total_tokens_found,
    )
  )
