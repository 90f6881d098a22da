"""
Curator Content Generators
Idle prompts, news summaries, Q&A answers and daily conversation summaries
posted by the AI curator pseudo-user.

Batch jobs generate text concurrently (one worker thread per room or
interest, bounded by `curator_concurrency`) and then write the results on
the calling thread. A failure in one branch is recorded in the report and
never stops the others.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from topichat.config import Settings
from topichat.errors import NotFoundError, TopichatError
from topichat.models import Chatroom, FeedPost, Message, Profile
from topichat.services.articles import Article, ArticleFinder
from topichat.services.store import SqlEntityStore, as_uuid

logger = logging.getLogger(__name__)

DEFAULT_TOPIC = "general discussion"
SUMMARY_TITLE = "오늘의 대화 요약"
SUMMARY_WINDOW = timedelta(hours=24)
SUMMARY_MIN_MESSAGES = 10


@dataclass
class CuratorReport:
    """Outcome of one batch run"""
    job: str
    processed: int = 0
    failed: int = 0
    skipped: int = 0
    errors: List[str] = field(default_factory=list)

    def record_failure(self, target: str, error: Exception):
        self.failed += 1
        self.errors.append(f"{target}: {error}")
        logger.error("%s failed for %s: %s", self.job, target, error)

    @property
    def message(self) -> str:
        text = f"{self.job}: processed {self.processed}"
        if self.failed:
            text += f", failed {self.failed}"
        if self.skipped:
            text += f", skipped {self.skipped}"
        return text + "."


# Prompts


def default_system_instruction(interest: Optional[str]) -> str:
    topic = interest or "general"
    return (
        f"당신은 {topic} 주제의 채팅방을 담당하는 전문 AI 큐레이터입니다. "
        "사용자의 질문에 대해 명확하고 간결하게 한국어로 답변해주세요."
    )


def system_instruction_for(room: Chatroom) -> str:
    """Room persona when set, otherwise the templated default"""
    return room.persona or default_system_instruction(room.interest)


def idle_prompt(interest: str, idle_minutes: int) -> str:
    return (
        f"'{interest}' 채팅방에서 약 {idle_minutes}분 동안 대화가 없었습니다. "
        "참여자들이 자연스럽게 이야기를 시작할 수 있도록 가볍고 흥미로운 질문이나 "
        "화제를 2~3문장으로 제안해주세요."
    )


def news_prompt(article: Article, interest: str) -> str:
    return (
        f"다음은 '{interest}' 관련 최신 기사입니다.\n"
        f"제목: {article.title}\n"
        f"요약: {article.description}\n"
        f"링크: {article.url}\n\n"
        "채팅방 참여자들을 위해 이 기사의 핵심을 3문장 이내로 요약하고, "
        "토론을 이끌어낼 질문 하나로 마무리해주세요. 마지막 줄에 링크를 포함해주세요."
    )


def summary_prompt(conversation: str) -> str:
    return (
        "다음 대화 내용의 핵심 주제를 3~5개의 불렛 포인트로 요약해줘. "
        "각 요약은 1-2문장으로 작성해줘. "
        f"이 요약은 '{SUMMARY_TITLE}'이라는 제목으로 게시될거야.\n\n---\n{conversation}"
    )


def ensure_curator_profile(db: Session, settings: Settings) -> Profile:
    """Create the curator pseudo-user's profile on first use"""
    curator_id = as_uuid(settings.curator_user_id)
    profile = db.query(Profile).filter(Profile.id == curator_id).first()
    if not profile:
        profile = Profile(id=curator_id, nickname=settings.curator_nickname, is_ai_curator=True, interests=[])
        db.add(profile)
        db.commit()
    return profile


async def _fan_out(
    targets: Sequence,
    work: Callable,
    concurrency: int,
) -> List[Tuple[object, object]]:
    """Run `work(target)` in worker threads; exceptions are returned, not raised"""
    semaphore = asyncio.Semaphore(max(concurrency, 1))

    async def guarded(target):
        async with semaphore:
            return await asyncio.to_thread(work, target)

    results = await asyncio.gather(*(guarded(t) for t in targets), return_exceptions=True)
    return list(zip(targets, results))


class CuratorBase:
    """Shared wiring for curator jobs"""

    def __init__(self, db: Session, store: SqlEntityStore, generator, settings: Settings):
        self.db = db
        self.store = store
        self.generator = generator
        self.settings = settings

    def post(self, room_id, content: str, kind: str) -> dict:
        return self.store.insert_message(
            room_id,
            self.settings.curator_user_id,
            content,
            curator_kind=kind,
        )


class IdleCurator(CuratorBase):
    """Posts a conversation starter in rooms that have gone quiet"""

    JOB = "idle-starter"

    def find_idle_rooms(self, now: Optional[datetime] = None) -> List[Chatroom]:
        now = now or datetime.utcnow()
        rooms = self.db.query(Chatroom)\
            .filter(Chatroom.is_active == True, Chatroom.idle_threshold_minutes > 0)\
            .all()

        idle = []
        for room in rooms:
            last_activity = room.last_message_at or room.created_at
            if last_activity is None:
                continue
            if last_activity < now - timedelta(minutes=room.idle_threshold_minutes):
                idle.append(room)
        return idle

    async def run(self, now: Optional[datetime] = None) -> CuratorReport:
        now = now or datetime.utcnow()
        report = CuratorReport(job=self.JOB)
        rooms = self.find_idle_rooms(now)
        if not rooms:
            logger.info("No idle chatrooms to process.")
            return report

        logger.info("Found %d idle chatrooms.", len(rooms))
        jobs = [
            (
                room.id,
                room.interest or DEFAULT_TOPIC,
                int((now - (room.last_message_at or room.created_at)).total_seconds() // 60),
                system_instruction_for(room),
            )
            for room in rooms
        ]

        def write(job):
            room_id, interest, idle_minutes, instruction = job
            return self.generator.generate(idle_prompt(interest, idle_minutes), instruction)

        for (room_id, *_), result in await _fan_out(jobs, write, self.settings.curator_concurrency):
            if isinstance(result, Exception):
                report.record_failure(str(room_id), result)
                continue
            try:
                self.post(room_id, result, "idle")
                report.processed += 1
            except TopichatError as e:
                report.record_failure(str(room_id), e)
        return report


class NewsCurator(CuratorBase):
    """Shares one summarized article per interest with every room on that interest"""

    JOB = "news-sharer"

    def __init__(self, db: Session, store: SqlEntityStore, generator, settings: Settings,
                 finder: ArticleFinder):
        super().__init__(db, store, generator, settings)
        self.finder = finder

    def rooms_by_interest(self) -> Dict[str, List]:
        rooms = self.db.query(Chatroom.id, Chatroom.interest)\
            .filter(
                Chatroom.is_active == True,
                Chatroom.enable_article_summary == True,
                Chatroom.interest.isnot(None),
            )\
            .all()

        grouped: Dict[str, List] = {}
        for room_id, interest in rooms:
            if interest:
                grouped.setdefault(interest, []).append(room_id)
        return grouped

    async def run(self) -> CuratorReport:
        report = CuratorReport(job=self.JOB)
        grouped = self.rooms_by_interest()
        logger.info("Found %d unique interests to search for.", len(grouped))

        def write(interest):
            article = self.finder.find_latest(interest)
            if article is None:
                return None
            return self.generator.generate(
                news_prompt(article, interest),
                default_system_instruction(interest),
            )

        for interest, result in await _fan_out(list(grouped), write, self.settings.curator_concurrency):
            if isinstance(result, Exception):
                report.record_failure(interest, result)
                continue
            if result is None:
                report.skipped += 1
                continue
            for room_id in grouped[interest]:
                try:
                    self.post(room_id, result, "news")
                    report.processed += 1
                except TopichatError as e:
                    report.record_failure(f"{interest}/{room_id}", e)
            logger.info("Posted article about %s to %d rooms.", interest, len(grouped[interest]))
        return report


class QACurator(CuratorBase):
    """Answers a `/질문` style question inside the asking room"""

    def answer(self, question: str, room_id) -> dict:
        room = self.db.query(Chatroom).filter(Chatroom.id == as_uuid(room_id)).first()
        if not room:
            raise NotFoundError("Chatroom not found.")

        reply = self.generator.generate(question, system_instruction_for(room))
        return self.post(room.id, reply, "qa")


class SummaryCurator(CuratorBase):
    """Writes a daily summary feed post for rooms with enough recent talk"""

    JOB = "summarize-chatrooms"

    def active_conversations(self, since: datetime) -> Dict:
        counts = self.db.query(Message.chatroom_id, func.count(Message.id))\
            .filter(Message.created_at > since, Message.is_deleted == False)\
            .group_by(Message.chatroom_id)\
            .all()

        conversations = {}
        for room_id, count in counts:
            if count < SUMMARY_MIN_MESSAGES:
                continue
            contents = self.db.query(Message.content)\
                .filter(
                    Message.chatroom_id == room_id,
                    Message.created_at > since,
                    Message.is_deleted == False,
                )\
                .order_by(Message.created_at.asc())\
                .all()
            conversations[room_id] = "\n".join(c for (c,) in contents)
        return conversations

    async def run(self, now: Optional[datetime] = None) -> CuratorReport:
        now = now or datetime.utcnow()
        report = CuratorReport(job=self.JOB)
        conversations = self.active_conversations(now - SUMMARY_WINDOW)
        if not conversations:
            logger.info("No active chatrooms to summarize.")
            return report

        def write(room_id):
            return self.generator.generate(summary_prompt(conversations[room_id]))

        for room_id, result in await _fan_out(list(conversations), write, self.settings.curator_concurrency):
            if isinstance(result, Exception):
                report.record_failure(str(room_id), result)
                continue
            self.db.add(FeedPost(chatroom_id=room_id, title=SUMMARY_TITLE, content=result))
            try:
                self.db.commit()
                report.processed += 1
            except SQLAlchemyError as e:
                self.db.rollback()
                report.record_failure(str(room_id), e)
        return report
