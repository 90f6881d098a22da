"""
MessageComment model - threaded comment under a root message
"""
import uuid
from datetime import datetime
from sqlalchemy import Column, DateTime, Text, Boolean, ForeignKey, Uuid
from sqlalchemy.orm import relationship
from topichat.database import Base


class MessageComment(Base):
    """Comment on a message; replying_to_id chains comments into a tree"""

    __tablename__ = "message_comments"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    message_id = Column(Uuid(as_uuid=True), ForeignKey("messages.id"), nullable=False, index=True)
    author_id = Column(Uuid(as_uuid=True), nullable=False)  # Identity lives with the auth provider

    content = Column(Text, nullable=False, default="")
    # No FK: the parent may be outside the fetched page and is then shown at root
    replying_to_id = Column(Uuid(as_uuid=True), nullable=True)
    is_deleted = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    message = relationship("Message", back_populates="comments")
    author = relationship("Profile", primaryjoin="foreign(MessageComment.author_id) == Profile.id", viewonly=True)
