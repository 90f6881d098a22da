"""
UserActivityMetric model - per-user engagement totals refreshed by a batch job
"""
import uuid
from datetime import datetime
from sqlalchemy import Column, DateTime, Integer, Uuid
from topichat.database import Base


class UserActivityMetric(Base):
    """One row per user, replaced on every metrics run"""

    __tablename__ = "user_activity_metrics"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid(as_uuid=True), nullable=False, unique=True)

    total_messages = Column(Integer, default=0, nullable=False)
    rooms_created = Column(Integer, default=0, nullable=False)  # Rooms the user administers
    total_reactions_received = Column(Integer, default=0, nullable=False)

    updated_at = Column(DateTime, default=datetime.utcnow)
