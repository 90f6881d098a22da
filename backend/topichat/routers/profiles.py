"""
Profiles Router - nickname and interest setup for the signed-in user
"""
from uuid import UUID
from typing import List, Optional
from datetime import datetime

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from pydantic import BaseModel, Field

from topichat.database import get_db
from topichat.dependencies import http_error, require_viewer
from topichat.errors import TopichatError
from topichat.services.profiles import ProfileService


router = APIRouter()


# Pydantic Schemas
class ProfileUpdate(BaseModel):
    nickname: Optional[str] = Field(None, max_length=100)
    interests: Optional[List[str]] = Field(None, min_length=1)


class ProfileResponse(BaseModel):
    id: UUID
    nickname: Optional[str]
    interests: List[str]
    is_ai_curator: bool
    created_at: datetime

    class Config:
        from_attributes = True


# Endpoints
@router.get("/profiles/me", response_model=ProfileResponse)
async def get_my_profile(
    viewer: UUID = Depends(require_viewer),
    db: Session = Depends(get_db),
):
    try:
        return ProfileService(db).get(viewer)
    except TopichatError as e:
        raise http_error(e)


@router.put("/profiles/me", response_model=ProfileResponse)
async def update_my_profile(
    payload: ProfileUpdate,
    viewer: UUID = Depends(require_viewer),
    db: Session = Depends(get_db),
):
    """Create or update the viewer's profile; omitted fields are left alone"""
    try:
        return ProfileService(db).upsert(viewer, **payload.model_dump(exclude_unset=True))
    except TopichatError as e:
        raise http_error(e)
