"""
Feed entities and boundary normalization

Rows arrive from the entity store (or a change-feed payload) as plain
mappings whose nested to-one relations may be a dict, a one-element list or
None. They are normalized here into a single typed shape before any feed
logic touches them.
"""
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

DELETED_PLACEHOLDER = "삭제된 메시지입니다."
UNKNOWN_NICKNAME = "알 수 없는 사용자"

CURATOR_KINDS = ("none", "idle", "news", "qa")


@dataclass(frozen=True)
class ParentPreview:
    """Quoted parent of a reply in the main feed"""
    id: str
    content: str
    author_nickname: str
    is_deleted: bool = False

    @property
    def display_content(self) -> str:
        return DELETED_PLACEHOLDER if self.is_deleted else self.content


@dataclass(frozen=True)
class FeedMessage:
    """A message as one viewer sees it, with viewer-relative reaction state"""
    id: str
    chatroom_id: str
    author_id: str
    content: str
    created_at: datetime
    replying_to_id: Optional[str] = None
    is_deleted: bool = False
    curator_kind: str = "none"
    author_nickname: str = UNKNOWN_NICKNAME
    is_curator: bool = False
    parent: Optional[ParentPreview] = None
    like_count: int = 0
    dislike_count: int = 0
    comment_count: int = 0
    viewer_has_liked: bool = False
    viewer_has_disliked: bool = False
    is_local: bool = False  # Client-only notice, never persisted

    @property
    def display_content(self) -> str:
        return DELETED_PLACEHOLDER if self.is_deleted else self.content

    @property
    def sort_key(self):
        return (self.created_at, self.id)


@dataclass(frozen=True)
class Comment:
    """A comment under a root message"""
    id: str
    message_id: str
    author_id: str
    content: str
    created_at: datetime
    replying_to_id: Optional[str] = None
    is_deleted: bool = False
    author_nickname: str = UNKNOWN_NICKNAME

    @property
    def display_content(self) -> str:
        return DELETED_PLACEHOLDER if self.is_deleted else self.content


def to_one(value: Any) -> Optional[Mapping]:
    """Collapse a to-one relation payload that may arrive as a list"""
    if value is None:
        return None
    if isinstance(value, (list, tuple)):
        return value[0] if value else None
    return value


def parse_timestamp(value: Any) -> datetime:
    """Accept datetimes or ISO-8601 strings (as sent over the change feed)"""
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        text = value.replace("Z", "+00:00")
        parsed = datetime.fromisoformat(text)
        # Store timestamps are naive UTC
        if parsed.tzinfo is not None:
            parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
        return parsed
    raise ValueError(f"Unsupported timestamp: {value!r}")


def _optional_id(value: Any) -> Optional[str]:
    return str(value) if value is not None else None


def normalize_message(row: Mapping) -> FeedMessage:
    """Build a FeedMessage from a raw store row"""
    profile = to_one(row.get("profiles")) or {}
    parent_row = to_one(row.get("parent_message"))

    parent = None
    if parent_row:
        parent_profile = to_one(parent_row.get("profiles")) or {}
        parent = ParentPreview(
            id=str(parent_row.get("id", row.get("replying_to_id"))),
            content=parent_row.get("content") or "",
            author_nickname=parent_profile.get("nickname") or UNKNOWN_NICKNAME,
            is_deleted=bool(parent_row.get("is_deleted", False)),
        )

    curator_kind = row.get("curator_kind") or "none"
    if curator_kind not in CURATOR_KINDS:
        curator_kind = "none"

    return FeedMessage(
        id=str(row["id"]),
        chatroom_id=str(row["chatroom_id"]),
        author_id=str(row["author_id"]),
        content=row.get("content") or "",
        created_at=parse_timestamp(row["created_at"]),
        replying_to_id=_optional_id(row.get("replying_to_id")),
        is_deleted=bool(row.get("is_deleted", False)),
        curator_kind=curator_kind,
        author_nickname=profile.get("nickname") or UNKNOWN_NICKNAME,
        is_curator=bool(profile.get("is_ai_curator", False)) or curator_kind != "none",
        parent=parent,
        like_count=int(row.get("like_count") or 0),
        dislike_count=int(row.get("dislike_count") or 0),
        comment_count=int(row.get("comment_count") or 0),
        viewer_has_liked=bool(row.get("viewer_has_liked", False)),
        viewer_has_disliked=bool(row.get("viewer_has_disliked", False)),
    )


def normalize_comment(row: Mapping) -> Comment:
    """Build a Comment from a raw store row"""
    profile = to_one(row.get("profiles")) or {}
    return Comment(
        id=str(row["id"]),
        message_id=str(row["message_id"]),
        author_id=str(row["author_id"]),
        content=row.get("content") or "",
        created_at=parse_timestamp(row["created_at"]),
        replying_to_id=_optional_id(row.get("replying_to_id")),
        is_deleted=bool(row.get("is_deleted", False)),
        author_nickname=profile.get("nickname") or UNKNOWN_NICKNAME,
    )


def has_aggregates(row: Mapping) -> bool:
    """True when a row already carries the derived reaction counts"""
    return "like_count" in row and "viewer_has_liked" in row


@dataclass(frozen=True)
class RoomAccess:
    """What the viewer may do in a room, resolved once on room entry"""
    room_id: str
    viewer_id: Optional[str] = None
    is_member: bool = False
    is_admin: bool = False

    @property
    def is_authenticated(self) -> bool:
        return self.viewer_id is not None
