"""msgspec request decoding and response encoding for the push routes."""

from __future__ import annotations

from typing import TypeVar

import msgspec
from fastapi import HTTPException, Request, status
from starlette.responses import Response

MAX_TRIGGER_BODY_BYTES = 256 * 1024

T = TypeVar("T", bound=msgspec.Struct)


async def decode_msgspec_request(request: Request, struct_type: type[T], *, max_bytes: int = MAX_TRIGGER_BODY_BYTES) -> T:
  """Decode an HTTP JSON request body into a msgspec.Struct value."""
  payload_bytes = await request.body()
  if not payload_bytes.strip():
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Request body is required.")

  if len(payload_bytes) > max_bytes:
    raise HTTPException(status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, detail=f"Request body exceeds {max_bytes} bytes.")

  try:
    return msgspec.json.decode(payload_bytes, type=struct_type)
  except msgspec.DecodeError as exc:
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Invalid request payload: {exc}") from exc


def encode_msgspec_response(payload: msgspec.Struct, *, status_code: int = status.HTTP_200_OK) -> Response:
  """Encode a msgspec.Struct value as a JSON HTTP response."""
  return Response(content=msgspec.json.encode(payload), status_code=status_code, media_type="application/json")
