"""
Entity Store
Message, comment and reaction persistence behind one interface.

Rows leave the store as plain dicts shaped like a nested relation payload
(`profiles`, `parent_message`) together with the viewer-relative aggregates.
Every committed write is published on the change feed.
"""
import functools
import logging
import uuid
from abc import ABC, abstractmethod
from collections import defaultdict
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from topichat.errors import NotFoundError, PermissionDeniedError, StoreError
from topichat.models import Chatroom, Message, MessageComment, MessageReaction, Participant
from topichat.services.change_feed import ChangeEvent, ChangeFeed, DELETE, INSERT, UPDATE
from topichat.services.entities import RoomAccess

logger = logging.getLogger(__name__)

REACTION_KINDS = ("like", "dislike")


def store_operation(method):
    """Surface database failures from a store method as StoreError"""
    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        try:
            return method(self, *args, **kwargs)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Entity store %s failed: %s", method.__name__, e)
            raise StoreError(str(e)) from e
    return wrapper


def as_uuid(value: Any) -> uuid.UUID:
    """Coerce an id coming from the feed or HTTP layer"""
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError:
        raise NotFoundError(f"Invalid id: {value!r}")


class EntityStore(ABC):
    """Operations the message feed needs from the entity store"""

    @abstractmethod
    def fetch_messages(self, room_id, viewer_id=None, offset: int = 0, limit: int = 30) -> List[dict]:
        """Newest-first page of messages for a room"""

    @abstractmethod
    def fetch_message(self, message_id, viewer_id=None) -> Optional[dict]:
        """One message with aggregates, or None"""

    @abstractmethod
    def insert_message(self, room_id, author_id, content: str,
                       replying_to_id=None, curator_kind: str = "none") -> dict:
        """Insert a message and return its full row"""

    @abstractmethod
    def soft_delete_message(self, message_id, user_id) -> dict:
        """Mark a message deleted; only its author may do so"""

    @abstractmethod
    def set_reaction(self, message_id, user_id, kind: Optional[str]) -> dict:
        """Set (or clear with None) the viewer's reaction; returns recomputed aggregates"""

    @abstractmethod
    def mark_read(self, room_id, user_id) -> None:
        """Advance the viewer's last-read watermark"""

    @abstractmethod
    def fetch_comments(self, message_id) -> List[dict]:
        """All comments under a message, oldest first"""

    @abstractmethod
    def insert_comment(self, message_id, author_id, content: str, replying_to_id=None) -> dict:
        """Insert a comment and return its row"""

    @abstractmethod
    def soft_delete_comment(self, comment_id, user_id) -> dict:
        """Mark a comment deleted; only its author may do so"""

    @abstractmethod
    def room_access(self, room_id, user_id) -> RoomAccess:
        """Resolve membership and admin rights for a viewer"""

    @abstractmethod
    def subscribe(self, table: str, callback: Callable[[ChangeEvent], None], **filters):
        """Register for change events; returns a handle with unsubscribe()"""


class SqlEntityStore(EntityStore):
    """EntityStore backed by a SQLAlchemy session"""

    def __init__(self, db: Session, change_feed: ChangeFeed):
        self.db = db
        self.change_feed = change_feed

    # Messages

    @store_operation
    def fetch_messages(self, room_id, viewer_id=None, offset: int = 0, limit: int = 30) -> List[dict]:
        messages = self._message_query()\
            .filter(Message.chatroom_id == as_uuid(room_id))\
            .order_by(Message.created_at.desc(), Message.id.desc())\
            .offset(offset)\
            .limit(limit)\
            .all()
        return self._message_rows(messages, viewer_id)

    @store_operation
    def fetch_message(self, message_id, viewer_id=None) -> Optional[dict]:
        message = self._message_query().filter(Message.id == as_uuid(message_id)).first()
        if not message:
            return None
        return self._message_rows([message], viewer_id)[0]

    @store_operation
    def insert_message(self, room_id, author_id, content: str,
                       replying_to_id=None, curator_kind: str = "none") -> dict:
        room = self.db.query(Chatroom).filter(Chatroom.id == as_uuid(room_id)).first()
        if not room:
            raise NotFoundError("Chatroom not found")

        message = Message(
            chatroom_id=room.id,
            author_id=as_uuid(author_id),
            content=content,
            replying_to_id=as_uuid(replying_to_id) if replying_to_id else None,
            curator_kind=curator_kind,
            created_at=datetime.utcnow(),
        )
        self.db.add(message)
        room.last_message_at = message.created_at
        self._commit()
        self.db.refresh(message)

        self._publish(INSERT, "messages", message_columns(message))
        return self.fetch_message(message.id, author_id)

    @store_operation
    def soft_delete_message(self, message_id, user_id) -> dict:
        message = self.db.query(Message).filter(Message.id == as_uuid(message_id)).first()
        if not message:
            raise NotFoundError("Message not found")
        if message.author_id != as_uuid(user_id):
            raise PermissionDeniedError("Only the author can delete a message")

        if not message.is_deleted:
            message.is_deleted = True
            self._commit()
            self._publish(UPDATE, "messages", message_columns(message))
        return self.fetch_message(message.id, user_id)

    # Reactions

    @store_operation
    def set_reaction(self, message_id, user_id, kind: Optional[str]) -> dict:
        if kind is not None and kind not in REACTION_KINDS:
            raise ValueError(f"Unknown reaction kind: {kind}")

        message_uuid, user_uuid = as_uuid(message_id), as_uuid(user_id)
        if not self.db.query(Message.id).filter(Message.id == message_uuid).first():
            raise NotFoundError("Message not found")

        existing = self.db.query(MessageReaction).filter(
            MessageReaction.message_id == message_uuid,
            MessageReaction.user_id == user_uuid,
        ).first()

        event_kind = None
        if kind is None:
            if existing:
                self.db.delete(existing)
                event_kind = DELETE
        elif existing:
            if existing.kind != kind:
                existing.kind = kind
                event_kind = UPDATE
        else:
            self.db.add(MessageReaction(message_id=message_uuid, user_id=user_uuid, kind=kind))
            event_kind = INSERT

        self._commit()
        if event_kind:
            self._publish(event_kind, "message_reactions", {
                "message_id": str(message_uuid),
                "user_id": str(user_uuid),
                "kind": kind,
            })
        return self.reaction_summary(message_uuid, user_uuid)

    @store_operation
    def reaction_summary(self, message_id, viewer_id=None) -> dict:
        """Aggregates for one message, recomputed from reaction rows"""
        counts = self._reaction_counts([as_uuid(message_id)])
        mine = self._viewer_reactions([as_uuid(message_id)], viewer_id)
        like_count, dislike_count = counts.get(as_uuid(message_id), (0, 0))
        kind = mine.get(as_uuid(message_id))
        return {
            "message_id": str(message_id),
            "like_count": like_count,
            "dislike_count": dislike_count,
            "viewer_has_liked": kind == "like",
            "viewer_has_disliked": kind == "dislike",
        }

    # Rooms

    @store_operation
    def mark_read(self, room_id, user_id) -> None:
        participant = self._participant(room_id, user_id)
        if participant is None:
            participant = Participant(chatroom_id=as_uuid(room_id), user_id=as_uuid(user_id))
            self.db.add(participant)
        participant.last_read_at = datetime.utcnow()
        self._commit()

    @store_operation
    def room_access(self, room_id, user_id) -> RoomAccess:
        if user_id is None:
            return RoomAccess(room_id=str(room_id))
        participant = self._participant(room_id, user_id)
        return RoomAccess(
            room_id=str(room_id),
            viewer_id=str(user_id),
            is_member=participant is not None,
            is_admin=bool(participant and participant.is_admin),
        )

    # Comments

    @store_operation
    def fetch_comments(self, message_id) -> List[dict]:
        comments = self.db.query(MessageComment)\
            .options(selectinload(MessageComment.author))\
            .filter(MessageComment.message_id == as_uuid(message_id))\
            .order_by(MessageComment.created_at.asc(), MessageComment.id.asc())\
            .all()
        return [comment_row(c) for c in comments]

    @store_operation
    def insert_comment(self, message_id, author_id, content: str, replying_to_id=None) -> dict:
        if not self.db.query(Message.id).filter(Message.id == as_uuid(message_id)).first():
            raise NotFoundError("Message not found")

        comment = MessageComment(
            message_id=as_uuid(message_id),
            author_id=as_uuid(author_id),
            content=content,
            replying_to_id=as_uuid(replying_to_id) if replying_to_id else None,
            created_at=datetime.utcnow(),
        )
        self.db.add(comment)
        self._commit()
        self.db.refresh(comment)

        row = comment_row(comment)
        self._publish(INSERT, "message_comments", row)
        return row

    @store_operation
    def soft_delete_comment(self, comment_id, user_id) -> dict:
        comment = self.db.query(MessageComment).filter(MessageComment.id == as_uuid(comment_id)).first()
        if not comment:
            raise NotFoundError("Comment not found")
        if comment.author_id != as_uuid(user_id):
            raise PermissionDeniedError("Only the author can delete a comment")

        if not comment.is_deleted:
            comment.is_deleted = True
            self._commit()
            self._publish(UPDATE, "message_comments", comment_row(comment))
        return comment_row(comment)

    # Change feed

    def subscribe(self, table: str, callback: Callable[[ChangeEvent], None], **filters):
        return self.change_feed.subscribe(table, callback, **filters)

    # Internals

    def _message_query(self):
        return self.db.query(Message).options(
            selectinload(Message.author),
            selectinload(Message.parent).selectinload(Message.author),
        )

    def _participant(self, room_id, user_id) -> Optional[Participant]:
        return self.db.query(Participant).filter(
            Participant.chatroom_id == as_uuid(room_id),
            Participant.user_id == as_uuid(user_id),
        ).first()

    def _message_rows(self, messages: List[Message], viewer_id) -> List[dict]:
        ids = [m.id for m in messages]
        counts = self._reaction_counts(ids)
        mine = self._viewer_reactions(ids, viewer_id)
        comment_counts = self._comment_counts(ids)

        rows = []
        for message in messages:
            row = message_columns(message)
            row["profiles"] = profile_payload(message.author)
            if message.parent is not None:
                row["parent_message"] = {
                    "id": str(message.parent.id),
                    "content": message.parent.content,
                    "is_deleted": message.parent.is_deleted,
                    "profiles": profile_payload(message.parent.author),
                }
            else:
                row["parent_message"] = None
            like_count, dislike_count = counts.get(message.id, (0, 0))
            row["like_count"] = like_count
            row["dislike_count"] = dislike_count
            row["comment_count"] = comment_counts.get(message.id, 0)
            row["viewer_has_liked"] = mine.get(message.id) == "like"
            row["viewer_has_disliked"] = mine.get(message.id) == "dislike"
            rows.append(row)
        return rows

    def _reaction_counts(self, message_ids: Iterable[uuid.UUID]) -> Dict[uuid.UUID, tuple]:
        message_ids = list(message_ids)
        if not message_ids:
            return {}
        results = self.db.query(MessageReaction.message_id, MessageReaction.kind, func.count(MessageReaction.id))\
            .filter(MessageReaction.message_id.in_(message_ids))\
            .group_by(MessageReaction.message_id, MessageReaction.kind)\
            .all()

        tally = defaultdict(lambda: [0, 0])
        for message_id, kind, count in results:
            tally[message_id][0 if kind == "like" else 1] = count
        return {message_id: tuple(pair) for message_id, pair in tally.items()}

    def _viewer_reactions(self, message_ids: Iterable[uuid.UUID], viewer_id) -> Dict[uuid.UUID, str]:
        message_ids = list(message_ids)
        if viewer_id is None or not message_ids:
            return {}
        results = self.db.query(MessageReaction.message_id, MessageReaction.kind)\
            .filter(
                MessageReaction.message_id.in_(message_ids),
                MessageReaction.user_id == as_uuid(viewer_id),
            )\
            .all()
        return {message_id: kind for message_id, kind in results}

    def _comment_counts(self, message_ids: List[uuid.UUID]) -> Dict[uuid.UUID, int]:
        if not message_ids:
            return {}
        results = self.db.query(MessageComment.message_id, func.count(MessageComment.id))\
            .filter(MessageComment.message_id.in_(message_ids))\
            .group_by(MessageComment.message_id)\
            .all()
        return dict(results)

    def _commit(self):
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Entity store write failed: %s", e)
            raise StoreError(str(e)) from e

    def _publish(self, kind: str, table: str, row: dict):
        self.change_feed.publish(ChangeEvent(kind=kind, table=table, row=row))


def profile_payload(profile) -> Optional[dict]:
    if profile is None:
        return None
    return {"nickname": profile.nickname, "is_ai_curator": profile.is_ai_curator}


def message_columns(message: Message) -> dict:
    """Raw message columns as published on the change feed"""
    return {
        "id": str(message.id),
        "chatroom_id": str(message.chatroom_id),
        "author_id": str(message.author_id),
        "content": message.content,
        "created_at": message.created_at.isoformat(),
        "replying_to_id": str(message.replying_to_id) if message.replying_to_id else None,
        "is_deleted": message.is_deleted,
        "curator_kind": message.curator_kind,
    }


def comment_row(comment: MessageComment) -> dict:
    return {
        "id": str(comment.id),
        "message_id": str(comment.message_id),
        "author_id": str(comment.author_id),
        "content": comment.content,
        "created_at": comment.created_at.isoformat(),
        "replying_to_id": str(comment.replying_to_id) if comment.replying_to_id else None,
        "is_deleted": comment.is_deleted,
        "profiles": profile_payload(comment.author),
    }
