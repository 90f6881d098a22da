"""
Auth Router - post-login hooks
"""
from uuid import UUID
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from pydantic import BaseModel

from topichat.config import Settings, get_settings
from topichat.database import get_db
from topichat.dependencies import http_error
from topichat.errors import TopichatError
from topichat.services.chatrooms import ChatroomService


router = APIRouter()


class LoginEvent(BaseModel):
    user_id: UUID


class OnboardingResponse(BaseModel):
    chatroom_ids: List[UUID]


@router.post("/auth/on-login", response_model=OnboardingResponse)
async def on_login(
    payload: LoginEvent,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """Join the user to a room for each of their profile interests"""
    try:
        rooms = ChatroomService(db, settings).assign_interest_rooms(payload.user_id)
    except TopichatError as e:
        raise http_error(e)
    return OnboardingResponse(chatroom_ids=[room.id for room in rooms])
