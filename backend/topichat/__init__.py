"""
Topichat package initialization - SQLAlchemy models
"""
from topichat.database import Base
from topichat.models import (
    Profile,
    Chatroom,
    Participant,
    Message,
    MessageComment,
    MessageReaction,
    FeedPost,
    PopularTopic,
)

__all__ = [
    "Base",
    "Profile",
    "Chatroom",
    "Participant",
    "Message",
    "MessageComment",
    "MessageReaction",
    "FeedPost",
    "PopularTopic",
]
