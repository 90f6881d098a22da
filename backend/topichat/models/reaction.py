"""
MessageReaction model - one like or dislike per user per message
"""
import uuid
from datetime import datetime
from sqlalchemy import Column, String, DateTime, ForeignKey, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship
from topichat.database import Base


class MessageReaction(Base):
    """A viewer's reaction; the unique constraint keeps like/dislike exclusive"""

    __tablename__ = "message_reactions"
    __table_args__ = (
        UniqueConstraint("message_id", "user_id", name="uq_reaction_message_user"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    message_id = Column(Uuid(as_uuid=True), ForeignKey("messages.id"), nullable=False, index=True)
    user_id = Column(Uuid(as_uuid=True), nullable=False)
    kind = Column(String(10), nullable=False)  # like, dislike

    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    message = relationship("Message", back_populates="reactions")
