"""Read-only lookups against community tables for recipient resolution."""

from __future__ import annotations

import logging
import uuid
from typing import Any

from sqlalchemy import column, select
from sqlalchemy import table as sa_table
from sqlalchemy.exc import SQLAlchemyError

from app.core.database import get_session_factory
from app.notifications.contracts import PostSummary, RecipientResolutionError, UserProfile
from app.notifications.events import parse_uuid
from app.schema.sql import ChatRoom, Comment, User

logger = logging.getLogger(__name__)


def _profile(row: User) -> UserProfile:
  return UserProfile(profile_id=row.id, auth_user_id=row.auth_user_id, nickname=row.nickname or row.name, is_moderator=bool(row.is_admin))


class CommunityRepository:
  """Answer the questions the recipient rules ask about users, posts, comments and chats.

  Database failures surface as RecipientResolutionError so the event aborts before
  any gateway call; missing rows are returned as None and handled by the caller.
  """

  async def _scalar(self, stmt: Any) -> Any:
    session_factory = get_session_factory()
    if session_factory is None:
      return None

    try:
      async with session_factory() as session:
        result = await session.execute(stmt)
        return result.scalar_one_or_none()
    except SQLAlchemyError as exc:
      logger.error("Community lookup failed error=%s", exc, exc_info=True)
      raise RecipientResolutionError("Community records could not be read.") from exc

  async def _scalars(self, stmt: Any) -> list[Any]:
    session_factory = get_session_factory()
    if session_factory is None:
      return []

    try:
      async with session_factory() as session:
        result = await session.execute(stmt)
        return list(result.scalars().all())
    except SQLAlchemyError as exc:
      logger.error("Community lookup failed error=%s", exc, exc_info=True)
      raise RecipientResolutionError("Community records could not be read.") from exc

  async def get_profile(self, profile_id: int) -> UserProfile | None:
    row = await self._scalar(select(User).where(User.id == profile_id))
    return _profile(row) if row is not None else None

  async def get_profile_by_auth_id(self, auth_user_id: uuid.UUID) -> UserProfile | None:
    row = await self._scalar(select(User).where(User.auth_user_id == auth_user_id))
    return _profile(row) if row is not None else None

  async def list_moderator_ids(self) -> list[uuid.UUID]:
    return await self._scalars(select(User.auth_user_id).where(User.is_admin.is_(True), User.auth_user_id.is_not(None)))

  async def list_user_ids(self) -> list[uuid.UUID]:
    return await self._scalars(select(User.auth_user_id).where(User.auth_user_id.is_not(None)))

  async def get_post(self, *, table: str, author_column: str | None, post_id: Any, title_column: str = "title") -> PostSummary | None:
    """Read a post's title and author from a board table named in the board registry."""
    columns = [column("id"), column(title_column)]
    if author_column:
      columns.append(column(author_column))

    board_table = sa_table(table, *columns)
    stmt = select(*[board_table.c[col.name] for col in columns if col.name != "id"]).where(board_table.c.id == post_id)

    session_factory = get_session_factory()
    if session_factory is None:
      return None

    try:
      async with session_factory() as session:
        result = await session.execute(stmt)
        row = result.mappings().first()
    except SQLAlchemyError as exc:
      logger.error("Post lookup failed table=%s post_id=%s error=%s", table, post_id, exc, exc_info=True)
      raise RecipientResolutionError(f"Post {post_id} could not be read from {table}.") from exc

    if row is None:
      return None

    author_value = row.get(author_column) if author_column else None
    author_id = parse_uuid(author_value)
    title = row.get(title_column)
    return PostSummary(title=str(title) if title else None, author_id=author_id)

  async def get_comment_author_profile_id(self, comment_id: Any) -> int | None:
    return await self._scalar(select(Comment.user_id).where(Comment.id == comment_id))

  async def get_chat_participants(self, room_id: uuid.UUID) -> list[uuid.UUID] | None:
    room = await self._scalar(select(ChatRoom).where(ChatRoom.id == room_id))
    if room is None:
      return None

    return list(room.participants or [])

