"""SQLAlchemy model for per-device push delivery tokens."""

from __future__ import annotations

import datetime
import uuid

from sqlalchemy import Boolean, DateTime, Index, String, Text, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base


class DevicePushToken(Base):
  """Persist a single device install token for a user; rows are disabled, never deleted."""

  __tablename__ = "device_push_tokens"
  __table_args__ = (Index("ix_device_push_tokens_user_enabled", "user_id", "enabled"),)

  token: Mapped[str] = mapped_column(Text, primary_key=True)
  user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
  platform: Mapped[str | None] = mapped_column(String, nullable=True)
  enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default="true")
  last_seen: Mapped[datetime.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
  created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
