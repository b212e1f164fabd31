"""Collapse stored device tokens to one delivery target per user."""

from __future__ import annotations

import uuid
from collections.abc import Iterable

from app.notifications.contracts import DeviceToken


def latest_token_per_user(candidates: Iterable[DeviceToken]) -> dict[uuid.UUID, DeviceToken]:
  """Pick each user's most recently seen token.

  Freshness is `last_seen_at` falling back to `created_at`; ties go to the
  lexicographically greatest token so repeated runs choose the same row.
  Blank tokens are never selected.
  """
  latest: dict[uuid.UUID, DeviceToken] = {}
  for row in candidates:
    if not row.token or not row.token.strip():
      continue

    current = latest.get(row.user_id)
    if current is None or (row.freshness, row.token) > (current.freshness, current.token):
      latest[row.user_id] = row

  return latest


def resolve_tokens(candidates: Iterable[DeviceToken]) -> list[str]:
  """Return the distinct token strings to deliver to, one per user, in a stable order."""
  return sorted({row.token for row in latest_token_per_user(candidates).values()})
