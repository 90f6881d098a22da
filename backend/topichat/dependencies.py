"""
FastAPI dependencies shared by the routers
"""
from functools import lru_cache
from typing import Optional
from uuid import UUID

from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from topichat.config import Settings, get_settings
from topichat.database import SessionLocal, get_db
from topichat.errors import ConflictError, NotFoundError, PermissionDeniedError, TopichatError
from topichat.services.articles import ArticleFinder, get_article_finder
from topichat.services.change_feed import get_change_feed
from topichat.services.generative import TextGenerator
from topichat.services.store import SqlEntityStore


def get_store(db: Session = Depends(get_db)) -> SqlEntityStore:
    return SqlEntityStore(db, get_change_feed())


def get_viewer(x_user_id: Optional[str] = Header(None)) -> Optional[UUID]:
    """Viewer id from the X-User-Id header; None when absent"""
    if not x_user_id:
        return None
    try:
        return UUID(x_user_id)
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid user id")


def require_viewer(viewer: Optional[UUID] = Depends(get_viewer)) -> UUID:
    if viewer is None:
        raise HTTPException(status_code=401, detail="Authentication required")
    return viewer


@lru_cache
def get_generator() -> TextGenerator:
    return TextGenerator()


def get_finder(settings: Settings = Depends(get_settings)) -> ArticleFinder:
    return get_article_finder(settings)


def get_session_factory():
    """Session factory for work that outlives the request"""
    return SessionLocal


def http_error(error: TopichatError) -> HTTPException:
    """Map an application error onto an HTTP status"""
    if isinstance(error, NotFoundError):
        return HTTPException(status_code=404, detail=str(error))
    if isinstance(error, PermissionDeniedError):
        return HTTPException(status_code=403, detail=str(error))
    if isinstance(error, ConflictError):
        return HTTPException(status_code=409, detail=str(error))
    return HTTPException(status_code=500, detail=str(error))
