"""Disable device tokens the gateway reported as permanently invalid."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from sqlalchemy.exc import SQLAlchemyError

from app.notifications.contracts import DeviceTokenStore, DispatchOutcome

logger = logging.getLogger(__name__)


class DeadTokenPruner:
  def __init__(self, store: DeviceTokenStore) -> None:
    self._store = store

  async def prune(self, outcomes: Iterable[DispatchOutcome]) -> list[str]:
    """Disable every permanently failed token in a single batched update.

    Returns the tokens that were submitted for disabling. Rows are never deleted.
    A store failure is logged and leaves delivery results intact.
    """
    dead = sorted({outcome.token for outcome in outcomes if outcome.permanent_failure})
    if not dead:
      return []

    try:
      updated = await self._store.disable_tokens(tokens=dead)
    except SQLAlchemyError as exc:
      logger.error("Dead token pruning failed count=%s error=%s", len(dead), exc, exc_info=True)
      return []

    logger.info("Disabled dead push tokens count=%s rows_updated=%s", len(dead), updated)
    return dead
