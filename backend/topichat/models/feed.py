"""
FeedPost and PopularTopic models - curator output outside the chat stream
"""
import uuid
from datetime import datetime
from sqlalchemy import Column, String, DateTime, Text, Float, ForeignKey, Uuid
from sqlalchemy.orm import relationship
from topichat.database import Base


class FeedPost(Base):
    """A generated post such as the daily conversation summary"""

    __tablename__ = "feeds"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    chatroom_id = Column(Uuid(as_uuid=True), ForeignKey("chatrooms.id"), nullable=False)
    title = Column(String(255), nullable=False)
    content = Column(Text, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    chatroom = relationship("Chatroom")


class PopularTopic(Base):
    """A trending keyword detected across recent messages"""

    __tablename__ = "popular_topics"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    topic = Column(String(100), nullable=False)
    summary = Column(Text, nullable=True)
    period = Column(String(20), nullable=False, default="weekly")
    score = Column(Float, default=0.0)
    created_at = Column(DateTime, default=datetime.utcnow)
