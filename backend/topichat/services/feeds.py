"""
Read side for curator output shown outside the chat stream
"""
from typing import List

from sqlalchemy.orm import Session, selectinload

from topichat.models import FeedPost, Participant, PopularTopic
from topichat.services.store import as_uuid

DEFAULT_FEED_LIMIT = 50


class FeedService:
    def __init__(self, db: Session):
        self.db = db

    def popular_posts(self, limit: int = DEFAULT_FEED_LIMIT) -> List[FeedPost]:
        """Newest posts across every room"""
        return self._posts().limit(limit).all()

    def subscribed_posts(self, user_id, limit: int = DEFAULT_FEED_LIMIT) -> List[FeedPost]:
        """Newest posts from the rooms the user has joined"""
        joined = self.db.query(Participant.chatroom_id)\
            .filter(Participant.user_id == as_uuid(user_id))
        return self._posts()\
            .filter(FeedPost.chatroom_id.in_(joined.scalar_subquery()))\
            .limit(limit)\
            .all()

    def popular_topics(self, period: str = "weekly") -> List[PopularTopic]:
        return self.db.query(PopularTopic)\
            .filter(PopularTopic.period == period)\
            .order_by(PopularTopic.score.desc(), PopularTopic.topic.asc())\
            .all()

    def _posts(self):
        return self.db.query(FeedPost)\
            .options(selectinload(FeedPost.chatroom))\
            .order_by(FeedPost.created_at.desc(), FeedPost.id.desc())
