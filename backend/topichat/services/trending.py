"""
Trending topic detection over recent messages
"""
import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from topichat.models import Message, PopularTopic
from topichat.services.curators import CuratorReport

logger = logging.getLogger(__name__)

# Dictionary-based entity extraction until a proper NER model is wired in
KEYWORD_DICTIONARY = [
    "비타민 C", "오메가3", "마그네슘", "코엔자임 Q10", "루테인", "프로바이오틱스",
    "당뇨", "고혈압", "콜레스테롤", "불면증", "두통", "역류성 식도염",
    "저탄고지", "간헐적 단식", "공복 유산소", "BCAA",
]

LOOKBACK = timedelta(days=30)
MENTION_THRESHOLD = 10
PERIOD = "weekly"


@dataclass
class TrendingTopic:
    topic: str
    total_mentions: int
    days_with_mentions: int

    @property
    def summary(self) -> str:
        return f"최근 {self.topic}에 대한 언급량이 급증했습니다. (총 {self.total_mentions}회 언급)"


def extract_entities(text: str, dictionary: Sequence[str] = KEYWORD_DICTIONARY) -> List[str]:
    """Dictionary entries mentioned in the text (case-insensitive)"""
    lowered = text.lower()
    return [entity for entity in dictionary if entity.lower() in lowered]


def daily_counts(
    messages: Iterable[Tuple[str, datetime]],
    dictionary: Sequence[str] = KEYWORD_DICTIONARY,
) -> Dict[str, Dict[str, int]]:
    """keyword -> YYYY-MM-DD -> mentions"""
    counts: Dict[str, Dict[str, int]] = defaultdict(lambda: defaultdict(int))
    for content, created_at in messages:
        day = created_at.date().isoformat()
        for entity in extract_entities(content or "", dictionary):
            counts[entity][day] += 1
    return counts


def find_trending(
    counts: Dict[str, Dict[str, int]],
    threshold: int = MENTION_THRESHOLD,
) -> List[TrendingTopic]:
    """Keywords with more than `threshold` mentions spread over more than one day"""
    trending = []
    for keyword, per_day in counts.items():
        total = sum(per_day.values())
        if total > threshold and len(per_day) > 1:
            trending.append(TrendingTopic(keyword, total, len(per_day)))
    trending.sort(key=lambda t: t.total_mentions, reverse=True)
    return trending


class TrendingTopicsJob:
    """Replaces the current weekly popular topics with freshly detected ones"""

    JOB = "trending-topics"

    def __init__(self, db: Session, dictionary: Sequence[str] = KEYWORD_DICTIONARY,
                 threshold: int = MENTION_THRESHOLD):
        self.db = db
        self.dictionary = dictionary
        self.threshold = threshold

    def run(self, now: Optional[datetime] = None) -> CuratorReport:
        now = now or datetime.utcnow()
        report = CuratorReport(job=self.JOB)

        messages = self.db.query(Message.content, Message.created_at)\
            .filter(Message.created_at >= now - LOOKBACK, Message.is_deleted == False)\
            .all()
        logger.info("Fetched %d messages from the last %d days.", len(messages), LOOKBACK.days)

        trending = find_trending(daily_counts(messages, self.dictionary), self.threshold)
        if not trending:
            return report

        try:
            self.db.query(PopularTopic).filter(PopularTopic.period == PERIOD).delete()
            for topic in trending:
                self.db.add(PopularTopic(
                    topic=topic.topic,
                    summary=topic.summary,
                    period=PERIOD,
                    score=float(topic.total_mentions),
                ))
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            report.record_failure(PERIOD, e)
            return report

        report.processed = len(trending)
        logger.info("Inserted %d new trending topics.", len(trending))
        return report
