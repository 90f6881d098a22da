"""
Feeds Router - curator posts and trending topics
"""
from uuid import UUID
from typing import List, Optional
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
from pydantic import BaseModel

from topichat.database import get_db
from topichat.dependencies import get_viewer
from topichat.services.feeds import DEFAULT_FEED_LIMIT, FeedService


router = APIRouter()


# Pydantic Schemas
class FeedPostResponse(BaseModel):
    id: UUID
    chatroom_id: UUID
    chatroom_name: Optional[str] = None
    title: str
    content: str
    created_at: datetime

    class Config:
        from_attributes = True


class PopularTopicResponse(BaseModel):
    id: UUID
    topic: str
    summary: Optional[str]
    period: str
    score: float
    created_at: datetime

    class Config:
        from_attributes = True


def post_response(post) -> FeedPostResponse:
    response = FeedPostResponse.model_validate(post)
    response.chatroom_name = post.chatroom.name if post.chatroom else None
    return response


# Endpoints
@router.get("/feeds", response_model=List[FeedPostResponse])
async def list_feed_posts(
    scope: str = Query("popular", pattern="^(popular|subscribed)$"),
    limit: int = Query(DEFAULT_FEED_LIMIT, ge=1, le=200),
    viewer: Optional[UUID] = Depends(get_viewer),
    db: Session = Depends(get_db),
):
    """Newest posts everywhere, or only from the viewer's rooms"""
    service = FeedService(db)
    if scope == "subscribed":
        if viewer is None:
            raise HTTPException(status_code=401, detail="Authentication required")
        posts = service.subscribed_posts(viewer, limit)
    else:
        posts = service.popular_posts(limit)
    return [post_response(post) for post in posts]


@router.get("/popular-topics", response_model=List[PopularTopicResponse])
async def list_popular_topics(
    period: str = "weekly",
    db: Session = Depends(get_db),
):
    return FeedService(db).popular_topics(period)
