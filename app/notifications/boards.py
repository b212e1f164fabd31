"""Static registry of content boards that emit post and comment events."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class BoardKind(str, Enum):
  COMMUNITY_POSTS = "community_posts"
  ARREST_NEWS = "arrest_news"
  INCIDENT_PHOTOS = "incident_photos"
  NEW_CRIME_CASES = "new_crime_cases"
  NOTICES = "notices"
  REVIEWS = "reviews"


@dataclass(frozen=True)
class BoardSpec:
  """Routing facts for one board: where the client deep-links and who authored a row."""

  kind: BoardKind
  label: str
  screen: str
  id_param: str
  author_column: str | None
  moderator_authored: bool = False
  title_column: str = "title"

  @property
  def table(self) -> str:
    return self.kind.value


BOARDS: dict[BoardKind, BoardSpec] = {
  BoardKind.COMMUNITY_POSTS: BoardSpec(kind=BoardKind.COMMUNITY_POSTS, label="Community", screen="CommunityPostDetail", id_param="postId", author_column="user_id"),
  # Notices and arrest news carry no author column; only moderators can publish them.
  BoardKind.ARREST_NEWS: BoardSpec(kind=BoardKind.ARREST_NEWS, label="Arrest News", screen="ArrestNewsDetail", id_param="newsId", author_column=None, moderator_authored=True),
  BoardKind.INCIDENT_PHOTOS: BoardSpec(kind=BoardKind.INCIDENT_PHOTOS, label="Incident Photos", screen="IncidentPhotoDetail", id_param="photoId", author_column="uploader_id"),
  # Crime case rows have no title column; `method` is what the app lists them by.
  BoardKind.NEW_CRIME_CASES: BoardSpec(kind=BoardKind.NEW_CRIME_CASES, label="New Crime Cases", screen="NewCrimeCaseDetail", id_param="caseId", author_column="user_id", title_column="method"),
  BoardKind.NOTICES: BoardSpec(kind=BoardKind.NOTICES, label="Notices", screen="NoticeDetail", id_param="noticeId", author_column=None, moderator_authored=True),
  BoardKind.REVIEWS: BoardSpec(kind=BoardKind.REVIEWS, label="Reviews", screen="ReviewDetail", id_param="reviewId", author_column="user_id"),
}

COMMENTS_TABLE = "comments"
CHAT_MESSAGES_TABLE = "chat_messages"
CHAT_SCREEN = "ChatMessageScreen"
FALLBACK_SCREEN = "Home"


def board_for_table(table: str | None) -> BoardSpec | None:
  """Return the board registered for a table name, or None for unknown tables."""
  if not table:
    return None

  try:
    kind = BoardKind(table.strip().lower())
  except ValueError:
    return None

  return BOARDS[kind]
