"""
Message model - one unit of chat content inside a chatroom
"""
import uuid
from datetime import datetime
from sqlalchemy import Column, String, DateTime, Text, Boolean, ForeignKey, Index, Uuid
from sqlalchemy.orm import relationship
from topichat.database import Base


class Message(Base):
    """A chat message; soft-deleted rows stay so replies remain attached"""

    __tablename__ = "messages"
    __table_args__ = (
        Index("ix_messages_room_created", "chatroom_id", "created_at"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    chatroom_id = Column(Uuid(as_uuid=True), ForeignKey("chatrooms.id"), nullable=False)
    author_id = Column(Uuid(as_uuid=True), nullable=False)  # Identity lives with the auth provider

    content = Column(Text, nullable=False, default="")
    replying_to_id = Column(Uuid(as_uuid=True), ForeignKey("messages.id"), nullable=True)

    is_deleted = Column(Boolean, default=False, nullable=False)
    curator_kind = Column(String(20), default="none", nullable=False)  # none, idle, news, qa

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    chatroom = relationship("Chatroom", back_populates="messages")
    author = relationship("Profile", primaryjoin="foreign(Message.author_id) == Profile.id", viewonly=True)
    parent = relationship("Message", remote_side=[id])
    comments = relationship("MessageComment", back_populates="message")
    reactions = relationship("MessageReaction", back_populates="message")
