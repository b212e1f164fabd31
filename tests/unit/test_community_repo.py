from __future__ import annotations

import uuid
from types import SimpleNamespace
from typing import Any

import pytest
from sqlalchemy.dialects import postgresql
from sqlalchemy.exc import ProgrammingError

from app.notifications import community_repo
from app.notifications.boards import BOARDS, BoardKind
from app.notifications.community_repo import CommunityRepository
from app.notifications.contracts import PostSummary, RecipientResolutionError


class _Result:
  def __init__(self, value: Any) -> None:
    self._value = value

  def scalar_one_or_none(self) -> Any:
    return self._value

  def scalars(self) -> SimpleNamespace:
    return SimpleNamespace(all=lambda: list(self._value or []))

  def mappings(self) -> SimpleNamespace:
    return SimpleNamespace(first=lambda: self._value)


class _Session:
  def __init__(self, value: Any = None, *, error: Exception | None = None) -> None:
    self.statements: list = []
    self._value = value
    self._error = error

  async def __aenter__(self):
    return self

  async def __aexit__(self, *exc_info):
    return False

  async def execute(self, stmt):
    self.statements.append(stmt)
    if self._error is not None:
      raise self._error
    return _Result(self._value)


def _sql(stmt) -> str:
  return " ".join(str(stmt.compile(dialect=postgresql.dialect())).split())


@pytest.fixture
def session(monkeypatch):
  holder = _Session()
  monkeypatch.setattr(community_repo, "get_session_factory", lambda: lambda: holder)
  return holder


@pytest.mark.anyio
@pytest.mark.parametrize("kind", list(BoardKind))
async def test_get_post_selects_the_board_title_and_author_columns(session, kind):
  board = BOARDS[kind]
  author = uuid.uuid4()
  row = {board.title_column: "Voice phishing"}
  if board.author_column:
    row[board.author_column] = str(author)
  session._value = row

  post = await CommunityRepository().get_post(table=board.table, author_column=board.author_column, post_id=7, title_column=board.title_column)

  sql = _sql(session.statements[0])
  assert sql.startswith(f"SELECT {board.table}.{board.title_column}")
  assert f"WHERE {board.table}.id = " in sql
  if board.author_column:
    assert f"{board.table}.{board.author_column}" in sql
  assert post == PostSummary(title="Voice phishing", author_id=author if board.author_column else None)


@pytest.mark.anyio
async def test_crime_case_lookup_never_selects_a_title_column(session):
  board = BOARDS[BoardKind.NEW_CRIME_CASES]
  session._value = {"method": "Loan scam", "user_id": None}

  post = await CommunityRepository().get_post(table=board.table, author_column=board.author_column, post_id=1, title_column=board.title_column)

  assert "title" not in _sql(session.statements[0])
  assert post == PostSummary(title="Loan scam", author_id=None)


@pytest.mark.anyio
async def test_missing_post_returns_none(session):
  assert await CommunityRepository().get_post(table="community_posts", author_column="user_id", post_id=404) is None


@pytest.mark.anyio
async def test_post_lookup_failure_becomes_resolution_error(monkeypatch):
  failing = _Session(error=ProgrammingError("SELECT", {}, Exception("no such column")))
  monkeypatch.setattr(community_repo, "get_session_factory", lambda: lambda: failing)

  with pytest.raises(RecipientResolutionError, match="community_posts"):
    await CommunityRepository().get_post(table="community_posts", author_column="user_id", post_id=1)


@pytest.mark.anyio
async def test_get_profile_maps_row_and_falls_back_to_name(session):
  auth_user_id = uuid.uuid4()
  session._value = SimpleNamespace(id=5, auth_user_id=auth_user_id, nickname=None, name="Kim", is_admin=True)

  profile = await CommunityRepository().get_profile(5)

  assert profile.profile_id == 5
  assert profile.auth_user_id == auth_user_id
  assert profile.nickname == "Kim"
  assert profile.is_moderator is True
  assert "WHERE users.id = " in _sql(session.statements[0])


@pytest.mark.anyio
async def test_moderator_list_filters_admins_with_auth_ids(session):
  moderators = [uuid.uuid4(), uuid.uuid4()]
  session._value = moderators

  assert await CommunityRepository().list_moderator_ids() == moderators
  sql = _sql(session.statements[0])
  assert sql.startswith("SELECT users.auth_user_id FROM users")
  assert "users.is_admin IS true" in sql
  assert "users.auth_user_id IS NOT NULL" in sql


@pytest.mark.anyio
async def test_comment_author_lookup_reads_profile_id(session):
  session._value = 12

  assert await CommunityRepository().get_comment_author_profile_id(7) == 12
  assert _sql(session.statements[0]).startswith("SELECT comments.user_id FROM comments WHERE comments.id = ")


@pytest.mark.anyio
async def test_chat_participants_for_known_and_unknown_rooms(session):
  participants = [uuid.uuid4(), uuid.uuid4()]
  session._value = SimpleNamespace(id=uuid.uuid4(), name="room", participants=participants)

  assert await CommunityRepository().get_chat_participants(uuid.uuid4()) == participants

  session._value = None
  assert await CommunityRepository().get_chat_participants(uuid.uuid4()) is None


@pytest.mark.anyio
async def test_lookups_without_database_return_empty(monkeypatch):
  monkeypatch.setattr(community_repo, "get_session_factory", lambda: None)
  repository = CommunityRepository()

  assert await repository.get_profile(1) is None
  assert await repository.list_user_ids() == []
  assert await repository.get_post(table="notices", author_column=None, post_id=1) is None
