"""
Chatrooms Router - room listing, creation, membership and settings
"""
from uuid import UUID
from typing import List, Optional
from datetime import datetime

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from pydantic import BaseModel

from topichat.config import Settings, get_settings
from topichat.database import get_db
from topichat.dependencies import get_store, http_error, require_viewer
from topichat.errors import TopichatError
from topichat.services.chatrooms import ChatroomService
from topichat.services.commands import suggest
from topichat.services.store import SqlEntityStore


router = APIRouter()


# Pydantic Schemas
class ChatroomCreate(BaseModel):
    name: str
    interest: Optional[str] = None
    description: Optional[str] = None


class ChatroomSettingsUpdate(BaseModel):
    name: Optional[str] = None
    persona: Optional[str] = None
    idle_threshold_minutes: Optional[int] = None
    enable_article_summary: Optional[bool] = None


class ChatroomResponse(BaseModel):
    id: UUID
    name: str
    description: Optional[str]
    interest: Optional[str]
    persona: Optional[str]
    idle_threshold_minutes: Optional[int]
    enable_article_summary: bool
    is_active: bool
    last_message_at: Optional[datetime]
    created_at: datetime

    class Config:
        from_attributes = True


class ChatroomDetailResponse(ChatroomResponse):
    is_member: bool = False
    is_admin: bool = False


class ParticipantResponse(BaseModel):
    chatroom_id: UUID
    user_id: UUID
    is_admin: bool
    last_read_at: Optional[datetime]
    joined_at: datetime

    class Config:
        from_attributes = True


class SuggestionResponse(BaseModel):
    suggestions: List[str]


# Endpoints
@router.get("/chatrooms", response_model=List[ChatroomResponse])
async def list_chatrooms(
    interest: Optional[str] = None,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """List active chatrooms, most recently active first"""
    return ChatroomService(db, settings).list_rooms(interest)


@router.post("/chatrooms", response_model=ChatroomResponse, status_code=201)
async def create_chatroom(
    payload: ChatroomCreate,
    viewer: UUID = Depends(require_viewer),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """Create a chatroom; the caller becomes its admin"""
    try:
        return ChatroomService(db, settings).create_room(
            viewer, payload.name, payload.interest, payload.description,
        )
    except TopichatError as e:
        raise http_error(e)


@router.get("/chatrooms/commands/suggest", response_model=SuggestionResponse)
async def suggest_commands(text: str = "", settings: Settings = Depends(get_settings)):
    """Command keywords matching a partially typed command"""
    return SuggestionResponse(suggestions=suggest(settings.command_keywords, text))


@router.get("/chatrooms/{chatroom_id}", response_model=ChatroomDetailResponse)
async def get_chatroom(
    chatroom_id: UUID,
    viewer: UUID = Depends(require_viewer),
    db: Session = Depends(get_db),
    store: SqlEntityStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
):
    """Get a chatroom with the caller's membership"""
    try:
        room = ChatroomService(db, settings).get_room(chatroom_id)
    except TopichatError as e:
        raise http_error(e)

    access = store.room_access(room.id, viewer)
    return ChatroomDetailResponse(
        **{c.name: getattr(room, c.name) for c in room.__table__.columns},
        is_member=access.is_member,
        is_admin=access.is_admin,
    )


@router.post("/chatrooms/{chatroom_id}/join", response_model=ParticipantResponse)
async def join_chatroom(
    chatroom_id: UUID,
    viewer: UUID = Depends(require_viewer),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """Join a chatroom; joining twice is a no-op"""
    try:
        return ChatroomService(db, settings).join(chatroom_id, viewer)
    except TopichatError as e:
        raise http_error(e)


@router.patch("/chatrooms/{chatroom_id}/settings", response_model=ChatroomResponse)
async def update_chatroom_settings(
    chatroom_id: UUID,
    payload: ChatroomSettingsUpdate,
    viewer: UUID = Depends(require_viewer),
    db: Session = Depends(get_db),
    store: SqlEntityStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
):
    """Change curator settings (room admins only)"""
    access = store.room_access(chatroom_id, viewer)
    try:
        return ChatroomService(db, settings).update_settings(
            access, **payload.model_dump(exclude_unset=True),
        )
    except TopichatError as e:
        raise http_error(e)


@router.post("/chatrooms/{chatroom_id}/read")
async def mark_chatroom_read(
    chatroom_id: UUID,
    viewer: UUID = Depends(require_viewer),
    store: SqlEntityStore = Depends(get_store),
):
    """Advance the caller's read watermark"""
    try:
        store.mark_read(chatroom_id, viewer)
    except TopichatError as e:
        raise http_error(e)
    return {"message": "Marked as read"}
