"""
Tests for trending topic detection
"""
from datetime import datetime, timedelta

from topichat.models import Message, PopularTopic
from topichat.services.trending import (
    TrendingTopicsJob,
    daily_counts,
    extract_entities,
    find_trending,
)

DAY1 = datetime(2024, 12, 1, 9, 0)
DAY2 = datetime(2024, 12, 2, 9, 0)


class TestExtraction:
    def test_dictionary_match(self):
        assert extract_entities("비타민 c랑 오메가3 같이 먹어도 돼요?") == ["비타민 C", "오메가3"]

    def test_no_match(self):
        assert extract_entities("오늘 날씨 좋네요") == []


class TestFindTrending:
    """Test suite for trend thresholds"""

    def test_needs_more_than_threshold_over_several_days(self):
        messages = [("마그네슘 좋아요", DAY1)] * 6 + [("마그네슘 추천", DAY2)] * 5
        trending = find_trending(daily_counts(messages))

        assert [(t.topic, t.total_mentions, t.days_with_mentions) for t in trending] == [("마그네슘", 11, 2)]
        assert trending[0].summary == "최근 마그네슘에 대한 언급량이 급증했습니다. (총 11회 언급)"

    def test_single_day_burst_is_ignored(self):
        messages = [("두통 심해요", DAY1)] * 20
        assert find_trending(daily_counts(messages)) == []

    def test_exactly_threshold_is_ignored(self):
        messages = [("당뇨", DAY1)] * 5 + [("당뇨", DAY2)] * 5
        assert find_trending(daily_counts(messages)) == []

    def test_sorted_by_mentions(self):
        messages = (
            [("루테인", DAY1)] * 6 + [("루테인", DAY2)] * 6
            + [("BCAA", DAY1)] * 10 + [("BCAA", DAY2)] * 10
        )
        assert [t.topic for t in find_trending(daily_counts(messages))] == ["BCAA", "루테인"]


class TestTrendingTopicsJob:
    """Test suite for refreshing popular topics"""

    def test_replaces_weekly_topics(self, db, make_room, user_id):
        room = make_room()
        now = datetime.utcnow()
        db.add(PopularTopic(topic="old", summary="stale", period="weekly", score=1))
        db.add(PopularTopic(topic="monthly", summary="kept", period="monthly", score=1))
        for day in (1, 2):
            for i in range(6):
                db.add(Message(
                    chatroom_id=room.id,
                    author_id=user_id,
                    content="불면증 때문에 힘들어요",
                    created_at=now - timedelta(days=day, minutes=i),
                ))
        db.commit()

        report = TrendingTopicsJob(db).run(now)

        assert report.processed == 1
        weekly = db.query(PopularTopic).filter(PopularTopic.period == "weekly").all()
        assert [(t.topic, t.score) for t in weekly] == [("불면증", 12.0)]
        assert db.query(PopularTopic).filter(PopularTopic.period == "monthly").count() == 1

    def test_no_trend_keeps_existing(self, db):
        db.add(PopularTopic(topic="old", period="weekly", score=1))
        db.commit()

        report = TrendingTopicsJob(db).run()

        assert report.processed == 0
        assert db.query(PopularTopic).count() == 1
