"""Work out who should hear about an event and in which role."""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterable
from dataclasses import dataclass, field

from app.notifications.contracts import CommunityDirectory, DomainEvent, EventKind, InvalidEventError, Recipient, RecipientRole
from app.notifications.events import coerce_row_id, event_board, parse_uuid
from app.notifications.templates import ANONYMOUS, UNTITLED, excerpt, post_title

logger = logging.getLogger(__name__)

# Lower wins when one user qualifies through several rules.
_ROLE_PRECEDENCE: dict[RecipientRole, int] = {RecipientRole.PARENT_AUTHOR: 0, RecipientRole.AUTHOR: 1, RecipientRole.MODERATOR: 2, RecipientRole.PARTICIPANT: 3, RecipientRole.MEMBER: 4}


@dataclass(frozen=True)
class ResolvedAudience:
  """Recipients of one event plus the copy placeholders read while resolving them."""

  recipients: tuple[Recipient, ...]
  placeholders: dict[str, str] = field(default_factory=dict)

  @property
  def user_ids(self) -> list[uuid.UUID]:
    return [recipient.user_id for recipient in self.recipients]

  @property
  def roles(self) -> dict[uuid.UUID, RecipientRole]:
    return {recipient.user_id: recipient.role for recipient in self.recipients}


class _AudienceBuilder:
  def __init__(self, *, exclude: uuid.UUID | None) -> None:
    self._exclude = exclude
    self._roles: dict[uuid.UUID, RecipientRole] = {}

  def add(self, user_id: uuid.UUID | None, role: RecipientRole) -> None:
    if user_id is None or user_id == self._exclude:
      return

    current = self._roles.get(user_id)
    if current is None or _ROLE_PRECEDENCE[role] < _ROLE_PRECEDENCE[current]:
      self._roles[user_id] = role

  def add_all(self, user_ids: Iterable[uuid.UUID], role: RecipientRole) -> None:
    for user_id in user_ids:
      self.add(user_id, role)

  def build(self) -> tuple[Recipient, ...]:
    return tuple(Recipient(user_id=user_id, role=role) for user_id, role in sorted(self._roles.items(), key=lambda item: str(item[0])))


class RecipientResolver:
  """Apply the per-event audience rules against the community directory.

  The actor behind an event never receives it. Posts fan out asymmetrically:
  ordinary members' posts go to moderators only, while posts written by a
  moderator (or on a moderator-only board) go to every user.
  """

  def __init__(self, directory: CommunityDirectory) -> None:
    self._directory = directory

  async def resolve(self, event: DomainEvent) -> ResolvedAudience:
    if event.kind is EventKind.NEW_POST:
      return await self._resolve_post(event)

    if event.kind is EventKind.NEW_COMMENT:
      return await self._resolve_comment(event)

    return await self._resolve_chat(event)

  async def _resolve_post(self, event: DomainEvent) -> ResolvedAudience:
    board = event_board(event)
    if board is None:
      raise InvalidEventError(f"No board registered for table {event.source_table}")

    record = event.record
    author_value = record.get(board.author_column) if board.author_column else None
    author_id = parse_uuid(author_value or record.get("user_id") or record.get("uploader_id"))

    author_is_moderator = board.moderator_authored
    if not author_is_moderator and author_id is not None:
      profile = await self._directory.get_profile_by_auth_id(author_id)
      author_is_moderator = bool(profile and profile.is_moderator)

    builder = _AudienceBuilder(exclude=author_id)
    if author_is_moderator:
      builder.add_all(await self._directory.list_user_ids(), RecipientRole.MEMBER)
    else:
      builder.add_all(await self._directory.list_moderator_ids(), RecipientRole.MODERATOR)

    recipients = builder.build()
    logger.info("Resolved post audience table=%s post_id=%s moderator_author=%s recipients=%d", event.source_table, record.get("id"), author_is_moderator, len(recipients))
    return ResolvedAudience(recipients=recipients, placeholders={"board": board.label, "post_title": post_title(record)})

  async def _resolve_comment(self, event: DomainEvent) -> ResolvedAudience:
    board = event_board(event)
    if board is None:
      raise InvalidEventError(f"No board registered for board_type {event.record.get('board_type')}")

    record = event.record
    commenter = await self._directory.get_profile(coerce_row_id(record["user_id"]))
    commenter_id = commenter.auth_user_id if commenter else None
    builder = _AudienceBuilder(exclude=commenter_id)

    title = UNTITLED
    post = await self._directory.get_post(table=board.table, author_column=board.author_column, post_id=coerce_row_id(record["post_id"]), title_column=board.title_column)
    if post is None:
      logger.warning("Post not found for comment comment_id=%s table=%s post_id=%s", record.get("id"), board.table, record.get("post_id"))
    else:
      title = post.title or UNTITLED
      builder.add(post.author_id, RecipientRole.AUTHOR)

    parent_id = record.get("parent_comment_id") or record.get("parent_id")
    if parent_id is not None:
      parent_profile_id = await self._directory.get_comment_author_profile_id(coerce_row_id(parent_id))
      parent_author = await self._directory.get_profile(parent_profile_id) if parent_profile_id is not None else None
      if parent_author is None:
        logger.warning("Parent comment author not found comment_id=%s parent_id=%s", record.get("id"), parent_id)
      else:
        builder.add(parent_author.auth_user_id, RecipientRole.PARENT_AUTHOR)

    builder.add_all(await self._directory.list_moderator_ids(), RecipientRole.MODERATOR)

    recipients = builder.build()
    logger.info("Resolved comment audience comment_id=%s post_id=%s recipients=%d", record.get("id"), record.get("post_id"), len(recipients))
    placeholders = {"board": board.label, "post_title": title, "actor": (commenter.nickname if commenter else None) or ANONYMOUS, "content": excerpt(record.get("content"))}
    return ResolvedAudience(recipients=recipients, placeholders=placeholders)

  async def _resolve_chat(self, event: DomainEvent) -> ResolvedAudience:
    record = event.record
    room_id = parse_uuid(record["room_id"])
    if room_id is None:
      raise InvalidEventError(f"Chat message has a malformed room_id: {record['room_id']}")

    sender_id = parse_uuid(record["sender_id"])
    sender = await self._directory.get_profile_by_auth_id(sender_id) if sender_id is not None else None
    placeholders = {"actor": (sender.nickname if sender else None) or ANONYMOUS, "content": excerpt(record.get("content"))}

    participants = await self._directory.get_chat_participants(room_id)
    if participants is None:
      logger.warning("Chat room not found room_id=%s", room_id)
      return ResolvedAudience(recipients=(), placeholders=placeholders)

    builder = _AudienceBuilder(exclude=sender_id)
    builder.add_all(participants, RecipientRole.PARTICIPANT)
    recipients = builder.build()
    logger.info("Resolved chat audience room_id=%s recipients=%d", room_id, len(recipients))
    return ResolvedAudience(recipients=recipients, placeholders=placeholders)
