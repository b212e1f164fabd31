from __future__ import annotations

import uuid

from fakes import make_token

from app.notifications.token_resolver import latest_token_per_user, resolve_tokens


def test_resolve_tokens_keeps_most_recently_seen_token_per_user():
  user = uuid.uuid4()
  rows = [make_token(user, "old", minutes=0, last_seen_minutes=5), make_token(user, "new", minutes=1, last_seen_minutes=30), make_token(user, "newest-created", minutes=20)]

  assert resolve_tokens(rows) == ["new"]


def test_resolve_tokens_falls_back_to_created_at_when_never_seen():
  user = uuid.uuid4()
  rows = [make_token(user, "first", minutes=1), make_token(user, "second", minutes=2)]

  assert resolve_tokens(rows) == ["second"]


def test_resolve_tokens_breaks_timestamp_ties_by_token_order():
  user = uuid.uuid4()
  rows = [make_token(user, "bbb", minutes=3), make_token(user, "aaa", minutes=3), make_token(user, "ccc", minutes=3)]

  assert resolve_tokens(rows) == ["ccc"]
  assert resolve_tokens(list(reversed(rows))) == ["ccc"]


def test_resolve_tokens_returns_distinct_strings_across_users():
  first, second = uuid.uuid4(), uuid.uuid4()
  rows = [make_token(first, "shared", minutes=1), make_token(second, "shared", minutes=1), make_token(second, "other", minutes=0)]

  assert resolve_tokens(rows) == ["shared"]


def test_latest_token_per_user_skips_blank_tokens():
  user = uuid.uuid4()
  rows = [make_token(user, "  ", minutes=50), make_token(user, "real", minutes=1)]

  latest = latest_token_per_user(rows)

  assert latest[user].token == "real"


def test_resolve_tokens_handles_empty_input():
  assert resolve_tokens([]) == []
