"""Repository for persisted device push tokens."""

from __future__ import annotations

import logging
import uuid
from collections.abc import Collection

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_session_factory
from app.notifications.contracts import DeviceToken, RecipientResolutionError
from app.schema.device_tokens import DevicePushToken

logger = logging.getLogger(__name__)


class DeviceTokenRepository:
  """Read enabled tokens and disable dead ones in Postgres."""

  async def list_enabled(self, *, user_ids: Collection[uuid.UUID] | None) -> list[DeviceToken]:
    """List enabled tokens for the given users; `None` means every user."""
    if user_ids is not None and not user_ids:
      return []

    session_factory = get_session_factory()
    if session_factory is None:
      return []

    try:
      async with session_factory() as session:
        return await self._list_enabled_with_session(session=session, user_ids=user_ids)
    except SQLAlchemyError as exc:
      logger.error("Device token lookup failed error=%s", exc, exc_info=True)
      raise RecipientResolutionError("Device tokens could not be read.") from exc

  async def _list_enabled_with_session(self, *, session: AsyncSession, user_ids: Collection[uuid.UUID] | None) -> list[DeviceToken]:
    stmt = select(DevicePushToken).where(DevicePushToken.enabled.is_(True))
    if user_ids is not None:
      stmt = stmt.where(DevicePushToken.user_id.in_(list(user_ids)))

    result = await session.execute(stmt)
    rows = result.scalars().all()
    return [DeviceToken(token=row.token, user_id=row.user_id, enabled=row.enabled, created_at=row.created_at, last_seen_at=row.last_seen, platform=row.platform) for row in rows]

  async def disable_tokens(self, *, tokens: Collection[str]) -> int:
    """Disable every given token in one UPDATE; rows are kept for history."""
    if not tokens:
      return 0

    session_factory = get_session_factory()
    if session_factory is None:
      return 0

    async with session_factory() as session:
      return await self._disable_tokens_with_session(session=session, tokens=tokens)

  async def _disable_tokens_with_session(self, *, session: AsyncSession, tokens: Collection[str]) -> int:
    stmt = update(DevicePushToken).where(DevicePushToken.token.in_(sorted(set(tokens)))).values(enabled=False)
    result = await session.execute(stmt)
    await session.commit()
    return int(result.rowcount or 0)
