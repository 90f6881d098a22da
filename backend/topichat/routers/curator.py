"""
Curator Router - scheduled curator jobs and on-demand Q&A

Batch endpoints are meant for a cron caller and require the shared
X-Cron-Secret header. Every endpoint answers `{message}` or `{error}`.
"""
import hmac
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from pydantic import BaseModel

from topichat.config import Settings, get_settings
from topichat.database import get_db
from topichat.dependencies import get_finder, get_generator, get_store
from topichat.errors import NotFoundError, TopichatError
from topichat.services.articles import ArticleFinder
from topichat.services.curators import (
    CuratorReport,
    IdleCurator,
    NewsCurator,
    QACurator,
    SummaryCurator,
)
from topichat.services.store import SqlEntityStore
from topichat.services.activity import ActivityMetricsJob
from topichat.services.trending import TrendingTopicsJob

logger = logging.getLogger(__name__)

router = APIRouter()


# Pydantic Schemas
class QuestionRequest(BaseModel):
    question: Optional[str] = None
    chatroom_id: Optional[str] = None


def error_response(status_code: int, error: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": error})


def is_authorized(secret: Optional[str], settings: Settings) -> bool:
    """A missing configured secret rejects every caller"""
    if not settings.cron_secret or not secret:
        return False
    return hmac.compare_digest(secret, settings.cron_secret)


def report_response(report: CuratorReport) -> JSONResponse:
    if report.failed and not report.processed:
        return error_response(500, "; ".join(report.errors))
    return JSONResponse(content={"message": report.message})


# Endpoints
@router.post("/curator/idle-starter")
async def run_idle_starter(
    x_cron_secret: Optional[str] = Header(None),
    db: Session = Depends(get_db),
    store: SqlEntityStore = Depends(get_store),
    generator=Depends(get_generator),
    settings: Settings = Depends(get_settings),
):
    """Post conversation starters in rooms past their idle threshold"""
    if not is_authorized(x_cron_secret, settings):
        return error_response(401, "Unauthorized")
    try:
        report = await IdleCurator(db, store, generator, settings).run()
    except TopichatError as e:
        logger.error("Idle starter failed: %s", e)
        return error_response(500, str(e))
    return report_response(report)


@router.post("/curator/news-sharer")
async def run_news_sharer(
    x_cron_secret: Optional[str] = Header(None),
    db: Session = Depends(get_db),
    store: SqlEntityStore = Depends(get_store),
    generator=Depends(get_generator),
    finder: ArticleFinder = Depends(get_finder),
    settings: Settings = Depends(get_settings),
):
    """Share a summarized article with every room on each interest"""
    if not is_authorized(x_cron_secret, settings):
        return error_response(401, "Unauthorized")
    try:
        report = await NewsCurator(db, store, generator, settings, finder).run()
    except TopichatError as e:
        logger.error("News sharer failed: %s", e)
        return error_response(500, str(e))
    return report_response(report)


@router.post("/curator/summarize")
async def run_daily_summary(
    x_cron_secret: Optional[str] = Header(None),
    db: Session = Depends(get_db),
    store: SqlEntityStore = Depends(get_store),
    generator=Depends(get_generator),
    settings: Settings = Depends(get_settings),
):
    """Write daily summary feed posts for busy rooms"""
    if not is_authorized(x_cron_secret, settings):
        return error_response(401, "Unauthorized")
    try:
        report = await SummaryCurator(db, store, generator, settings).run()
    except TopichatError as e:
        logger.error("Daily summary failed: %s", e)
        return error_response(500, str(e))
    return report_response(report)


@router.post("/curator/trending-topics")
async def run_trending_topics(
    x_cron_secret: Optional[str] = Header(None),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """Refresh the weekly popular topics"""
    if not is_authorized(x_cron_secret, settings):
        return error_response(401, "Unauthorized")
    return report_response(TrendingTopicsJob(db).run())


@router.post("/curator/activity-metrics")
async def run_activity_metrics(
    x_cron_secret: Optional[str] = Header(None),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """Recompute per-user activity totals"""
    if not is_authorized(x_cron_secret, settings):
        return error_response(401, "Unauthorized")
    return report_response(ActivityMetricsJob(db).run())


@router.post("/curator/qa")
async def answer_question(
    payload: QuestionRequest,
    db: Session = Depends(get_db),
    store: SqlEntityStore = Depends(get_store),
    generator=Depends(get_generator),
    settings: Settings = Depends(get_settings),
):
    """Answer a question in the given room as the curator"""
    if not payload.question or not payload.chatroom_id:
        return error_response(400, "question and chatroom_id are required")

    try:
        QACurator(db, store, generator, settings).answer(payload.question, payload.chatroom_id)
    except NotFoundError as e:
        return error_response(404, str(e))
    except TopichatError as e:
        logger.error("Q&A failed for room %s: %s", payload.chatroom_id, e)
        return error_response(500, str(e))
    return JSONResponse(content={"message": "Answer posted."})
