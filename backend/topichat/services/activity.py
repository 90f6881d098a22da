"""
User activity metrics batch
"""
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from topichat.models import Message, MessageReaction, Participant, Profile, UserActivityMetric
from topichat.services.curators import CuratorReport

logger = logging.getLogger(__name__)


class ActivityMetricsJob:
    """Recomputes message, room and reaction totals for every profile"""

    JOB = "activity-metrics"

    def __init__(self, db: Session):
        self.db = db

    def run(self, now: Optional[datetime] = None) -> CuratorReport:
        now = now or datetime.utcnow()
        report = CuratorReport(job=self.JOB)

        user_ids = [row.id for row in self.db.query(Profile.id).all()]
        messages = dict(
            self.db.query(Message.author_id, func.count(Message.id))
            .group_by(Message.author_id)
            .all()
        )
        rooms = dict(
            self.db.query(Participant.user_id, func.count(Participant.id))
            .filter(Participant.is_admin == True)
            .group_by(Participant.user_id)
            .all()
        )
        reactions = dict(
            self.db.query(Message.author_id, func.count(MessageReaction.id))
            .join(MessageReaction, MessageReaction.message_id == Message.id)
            .group_by(Message.author_id)
            .all()
        )
        existing = {
            metric.user_id: metric
            for metric in self.db.query(UserActivityMetric).filter(UserActivityMetric.user_id.in_(user_ids))
        } if user_ids else {}

        for user_id in user_ids:
            metric = existing.get(user_id)
            if metric is None:
                metric = UserActivityMetric(user_id=user_id)
                self.db.add(metric)
            metric.total_messages = messages.get(user_id, 0)
            metric.rooms_created = rooms.get(user_id, 0)
            metric.total_reactions_received = reactions.get(user_id, 0)
            metric.updated_at = now

        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            report.record_failure("metrics", e)
            return report

        report.processed = len(user_ids)
        logger.info("Calculated metrics for %d users.", len(user_ids))
        return report
