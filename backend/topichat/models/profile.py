"""
Profile model - public user data and selected interests
"""
import uuid
from datetime import datetime
from sqlalchemy import Column, String, DateTime, Boolean, JSON, Uuid
from topichat.database import Base


class Profile(Base):
    """A user profile; the curator pseudo-user has is_ai_curator set"""

    __tablename__ = "profiles"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    nickname = Column(String(100), nullable=True, unique=True)
    interests = Column(JSON, default=list)  # List of interest tags
    is_ai_curator = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
