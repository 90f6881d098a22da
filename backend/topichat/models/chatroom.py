"""
Chatroom and Participant models - interest-based rooms and their members
"""
import uuid
from datetime import datetime
from sqlalchemy import (
    Column, String, DateTime, Text, Integer, Boolean, ForeignKey, UniqueConstraint, Uuid
)
from sqlalchemy.orm import relationship
from topichat.database import Base


class Chatroom(Base):
    """An interest-based chatroom with curator settings"""

    __tablename__ = "chatrooms"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    interest = Column(String(100), nullable=True, index=True)

    # Curator configuration
    persona = Column(Text, nullable=True)  # Overrides the default system instruction
    idle_threshold_minutes = Column(Integer, nullable=True, default=1440)  # 0/None = never
    enable_article_summary = Column(Boolean, default=True, nullable=False)

    is_active = Column(Boolean, default=True, nullable=False)
    last_message_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    messages = relationship("Message", back_populates="chatroom")
    participants = relationship("Participant", back_populates="chatroom", cascade="all, delete-orphan")


class Participant(Base):
    """Room membership with the per-viewer read watermark"""

    __tablename__ = "participants"
    __table_args__ = (
        UniqueConstraint("chatroom_id", "user_id", name="uq_participant_room_user"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    chatroom_id = Column(Uuid(as_uuid=True), ForeignKey("chatrooms.id"), nullable=False)
    user_id = Column(Uuid(as_uuid=True), nullable=False)

    is_admin = Column(Boolean, default=False, nullable=False)
    last_read_at = Column(DateTime, nullable=True)
    joined_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    chatroom = relationship("Chatroom", back_populates="participants")
