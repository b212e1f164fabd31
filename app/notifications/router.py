"""Event entry point: recipients, composition, dispatch and pruning in sequence."""

from __future__ import annotations

import logging
import uuid
from collections.abc import Collection, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Protocol

from app.notifications.composer import MessageComposer
from app.notifications.contracts import ComposedMessage, DeviceTokenStore, DispatchOutcome, DispatchSummary, DomainEvent, EventKind, NotificationError, PushContent, RecipientRole
from app.notifications.events import notification_id
from app.notifications.pruner import DeadTokenPruner
from app.notifications.recipients import RecipientResolver
from app.notifications.templates import render_event_content
from app.notifications.token_resolver import latest_token_per_user

logger = logging.getLogger(__name__)


class RouterState(str, Enum):
  RECEIVED = "RECEIVED"
  RESOLVING_RECIPIENTS = "RESOLVING_RECIPIENTS"
  COMPOSING = "COMPOSING"
  DISPATCHING = "DISPATCHING"
  PRUNING = "PRUNING"
  DONE = "DONE"
  FAILED = "FAILED"


class MessageDispatcher(Protocol):
  async def dispatch_all(self, messages: Sequence[ComposedMessage]) -> list[DispatchOutcome]: ...


@dataclass(frozen=True)
class EventResult:
  """Terminal state of one handled event plus its delivery counts."""

  kind: EventKind
  nid: str
  state: RouterState
  recipients: int
  summary: DispatchSummary
  transitions: tuple[RouterState, ...] = field(default=(), repr=False)


class _Run:
  def __init__(self, label: str) -> None:
    self._label = label
    self.state = RouterState.RECEIVED
    self.transitions: list[RouterState] = [RouterState.RECEIVED]

  def advance(self, state: RouterState) -> None:
    logger.debug("Router transition nid=%s %s -> %s", self._label, self.state.value, state.value)
    self.state = state
    self.transitions.append(state)


class EventRouter:
  """Run one domain event or broadcast through the dispatch pipeline.

  Fatal errors (credentials, recipient lookups) move the run to FAILED and are
  re-raised before any gateway call. Per-message failures are data: the run
  still reaches DONE with a mixed summary.
  """

  def __init__(self, *, resolver: RecipientResolver, token_store: DeviceTokenStore, composer: MessageComposer, dispatcher: MessageDispatcher, pruner: DeadTokenPruner) -> None:
    self._resolver = resolver
    self._token_store = token_store
    self._composer = composer
    self._dispatcher = dispatcher
    self._pruner = pruner

  async def handle(self, event: DomainEvent) -> EventResult:
    nid = notification_id(event)
    run = _Run(nid)
    logger.info("Handling push event kind=%s table=%s nid=%s", event.kind.value, event.source_table, nid)

    try:
      run.advance(RouterState.RESOLVING_RECIPIENTS)
      audience = await self._resolver.resolve(event)
      candidates = await self._token_store.list_enabled(user_ids=audience.user_ids) if audience.recipients else []
      latest = latest_token_per_user(candidates)

      run.advance(RouterState.COMPOSING)
      roles = audience.roles
      contents: dict[RecipientRole, PushContent] = {}
      messages: list[ComposedMessage] = []
      for user_id, token in sorted(latest.items(), key=lambda item: item[1].token):
        role = roles.get(user_id)
        if role is None:
          continue
        if role not in contents:
          contents[role] = render_event_content(event, role=role, placeholders=audience.placeholders)
        messages.append(self._composer.compose(token.token, contents[role], platform=token.platform))

      summary = await self._deliver(run, messages, total_tokens_found=len(candidates))
    except NotificationError:
      run.advance(RouterState.FAILED)
      logger.error("Push event failed kind=%s nid=%s state=%s", event.kind.value, nid, run.transitions[-2].value, exc_info=True)
      raise

    logger.info("Push event done kind=%s nid=%s recipients=%s sent=%s failed=%s disabled=%s", event.kind.value, nid, len(audience.recipients), summary.sent, summary.failed, summary.disabled_tokens)
    return EventResult(kind=event.kind, nid=nid, state=run.state, recipients=len(audience.recipients), summary=summary, transitions=tuple(run.transitions))

  async def broadcast(self, *, user_ids: Collection[uuid.UUID] | None, content: PushContent) -> DispatchSummary:
    """Send one piece of content to explicit users, or to every user when `user_ids` is None."""
    run = _Run(content.nid)
    try:
      run.advance(RouterState.RESOLVING_RECIPIENTS)
      candidates = await self._token_store.list_enabled(user_ids=user_ids)
      rows = sorted(latest_token_per_user(candidates).values(), key=lambda row: row.token)

      run.advance(RouterState.COMPOSING)
      messages = self._composer.compose_all(rows, content)
      summary = await self._deliver(run, messages, total_tokens_found=len(candidates))
    except NotificationError:
      run.advance(RouterState.FAILED)
      logger.error("Push broadcast failed nid=%s", content.nid, exc_info=True)
      raise

    logger.info("Push broadcast done nid=%s audience_all=%s sent=%s failed=%s disabled=%s", content.nid, user_ids is None, summary.sent, summary.failed, summary.disabled_tokens)
    return summary

  async def _deliver(self, run: _Run, messages: list[ComposedMessage], *, total_tokens_found: int) -> DispatchSummary:
    run.advance(RouterState.DISPATCHING)
    outcomes = await self._dispatcher.dispatch_all(messages) if messages else []

    run.advance(RouterState.PRUNING)
    disabled = await self._pruner.prune(outcomes)

    run.advance(RouterState.DONE)
    return summarize(outcomes, disabled=disabled, total_tokens_found=total_tokens_found)


def summarize(outcomes: Sequence[DispatchOutcome], *, disabled: Sequence[str], total_tokens_found: int) -> DispatchSummary:
  sent = sum(1 for outcome in outcomes if outcome.ok)
  return DispatchSummary(sent=sent, failed=len(outcomes) - sent, disabled_tokens=len(disabled), used_tokens=len(outcomes), total_tokens_found=total_tokens_found, disabled=tuple(disabled))
