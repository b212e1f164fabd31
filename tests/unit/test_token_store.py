from __future__ import annotations

import uuid
from types import SimpleNamespace

import pytest
from sqlalchemy.dialects import postgresql
from sqlalchemy.exc import OperationalError

from app.notifications import token_store
from app.notifications.contracts import RecipientResolutionError
from app.notifications.token_store import DeviceTokenRepository


class _Session:
  def __init__(self, *, error: Exception | None = None, rowcount: int = 0) -> None:
    self.statements: list = []
    self.commits = 0
    self._error = error
    self._rowcount = rowcount

  async def __aenter__(self):
    return self

  async def __aexit__(self, *exc_info):
    return False

  async def execute(self, stmt):
    self.statements.append(stmt)
    if self._error is not None:
      raise self._error
    return SimpleNamespace(rowcount=self._rowcount, scalars=lambda: SimpleNamespace(all=lambda: []))

  async def commit(self):
    self.commits += 1


def _sql(stmt) -> str:
  return str(stmt.compile(dialect=postgresql.dialect()))


@pytest.mark.anyio
async def test_list_enabled_without_database_returns_nothing(monkeypatch):
  monkeypatch.setattr(token_store, "get_session_factory", lambda: None)

  assert await DeviceTokenRepository().list_enabled(user_ids=None) == []


@pytest.mark.anyio
async def test_list_enabled_for_empty_audience_skips_query(monkeypatch):
  def _fail():
    raise AssertionError("session factory should not be used")

  monkeypatch.setattr(token_store, "get_session_factory", _fail)

  assert await DeviceTokenRepository().list_enabled(user_ids=[]) == []


@pytest.mark.anyio
async def test_list_enabled_filters_enabled_rows_for_users(monkeypatch):
  session = _Session()
  monkeypatch.setattr(token_store, "get_session_factory", lambda: lambda: session)

  await DeviceTokenRepository().list_enabled(user_ids=[uuid.uuid4()])

  sql = _sql(session.statements[0])
  assert "device_push_tokens.enabled IS true" in sql
  assert "device_push_tokens.user_id IN" in sql


@pytest.mark.anyio
async def test_list_enabled_wraps_database_errors(monkeypatch):
  session = _Session(error=OperationalError("SELECT", {}, Exception("down")))
  monkeypatch.setattr(token_store, "get_session_factory", lambda: lambda: session)

  with pytest.raises(RecipientResolutionError):
    await DeviceTokenRepository().list_enabled(user_ids=None)


@pytest.mark.anyio
async def test_disable_tokens_issues_single_update_and_commits(monkeypatch):
  session = _Session(rowcount=2)
  monkeypatch.setattr(token_store, "get_session_factory", lambda: lambda: session)

  disabled = await DeviceTokenRepository().disable_tokens(tokens=["b", "a", "b"])

  assert disabled == 2
  assert len(session.statements) == 1
  assert session.commits == 1
  sql = _sql(session.statements[0])
  assert sql.startswith("UPDATE device_push_tokens SET enabled=")
  assert "DELETE" not in sql
