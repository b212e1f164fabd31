"""SQLAlchemy models for the community tables the dispatcher reads."""

from __future__ import annotations

import datetime
import uuid

from sqlalchemy import BigInteger, Boolean, DateTime, String, Text, func
from sqlalchemy.dialects.postgresql import ARRAY, UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base
from app.schema.device_tokens import DevicePushToken  # noqa: F401


class User(Base):
  """Community profile row; `auth_user_id` is the identity push tokens are keyed by."""

  __tablename__ = "users"

  id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
  auth_user_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), unique=True, index=True, nullable=True)
  nickname: Mapped[str | None] = mapped_column(String, nullable=True)
  name: Mapped[str | None] = mapped_column(String, nullable=True)
  is_admin: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
  created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class Comment(Base):
  """Comment row shared by every board, discriminated by `board_type`."""

  __tablename__ = "comments"

  id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
  post_id: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
  board_type: Mapped[str] = mapped_column(String, nullable=False)
  user_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
  parent_comment_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
  content: Mapped[str] = mapped_column(Text, nullable=False)
  created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class ChatRoom(Base):
  __tablename__ = "chat_rooms"

  id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
  name: Mapped[str | None] = mapped_column(String, nullable=True)
  participants: Mapped[list[uuid.UUID]] = mapped_column(ARRAY(UUID(as_uuid=True)), nullable=False, default=list)

