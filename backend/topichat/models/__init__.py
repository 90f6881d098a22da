"""Models package initialization"""
from topichat.models.profile import Profile
from topichat.models.chatroom import Chatroom, Participant
from topichat.models.message import Message
from topichat.models.comment import MessageComment
from topichat.models.reaction import MessageReaction
from topichat.models.feed import FeedPost, PopularTopic
from topichat.models.activity import UserActivityMetric

__all__ = [
    "Profile",
    "Chatroom",
    "Participant",
    "Message",
    "MessageComment",
    "MessageReaction",
    "FeedPost",
    "PopularTopic",
    "UserActivityMetric",
]
