from __future__ import annotations

import uuid
from unittest.mock import AsyncMock

import pytest
from fakes import make_token
from sqlalchemy.exc import OperationalError

from app.notifications.contracts import DispatchOutcome
from app.notifications.pruner import DeadTokenPruner


@pytest.mark.anyio
async def test_prune_disables_only_permanent_failures_in_one_batch(token_store):
  user = uuid.uuid4()
  token_store.rows = [make_token(user, "a"), make_token(uuid.uuid4(), "b"), make_token(uuid.uuid4(), "c")]
  outcomes = [
    DispatchOutcome(token="a", ok=True),
    DispatchOutcome(token="b", ok=False, permanent_failure=True, provider_code="UNREGISTERED"),
    DispatchOutcome(token="c", ok=False, permanent_failure=False, http_status=503),
  ]

  disabled = await DeadTokenPruner(token_store).prune(outcomes)

  assert disabled == ["b"]
  assert token_store.disable_calls == [["b"]]
  assert {row.token: row.enabled for row in token_store.rows} == {"a": True, "b": False, "c": True}
  assert len(token_store.rows) == 3


@pytest.mark.anyio
async def test_prune_skips_store_when_nothing_failed_permanently():
  store = AsyncMock()

  disabled = await DeadTokenPruner(store).prune([DispatchOutcome(token="a", ok=True)])

  assert disabled == []
  store.disable_tokens.assert_not_awaited()


@pytest.mark.anyio
async def test_prune_store_failure_is_logged_not_raised():
  store = AsyncMock()
  store.disable_tokens.side_effect = OperationalError("UPDATE", {}, Exception("down"))

  disabled = await DeadTokenPruner(store).prune([DispatchOutcome(token="a", ok=False, permanent_failure=True)])

  assert disabled == []
  store.disable_tokens.assert_awaited_once_with(tokens=["a"])
