"""
Messages Router - message feed, reactions and comment threads
"""
from uuid import UUID
from typing import List, Optional
from datetime import datetime

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from pydantic import BaseModel

from topichat.config import Settings, get_settings
from topichat.dependencies import (
    get_generator,
    get_session_factory,
    get_store,
    get_viewer,
    http_error,
    require_viewer,
)
from topichat.errors import TopichatError
from topichat.services.change_feed import get_change_feed
from topichat.services.commands import CommandDispatcher
from topichat.services.comment_tree import build_tree
from topichat.services.curators import QACurator
from topichat.services.entities import normalize_comment, normalize_message
from topichat.services.reactions import ReactionState, toggled
from topichat.services.store import SqlEntityStore

router = APIRouter()


# Pydantic Schemas
class MessageCreate(BaseModel):
    content: str
    replying_to_id: Optional[UUID] = None


class CommentCreate(BaseModel):
    content: str
    replying_to_id: Optional[UUID] = None


class ParentPreviewResponse(BaseModel):
    id: str
    display_content: str
    author_nickname: str
    is_deleted: bool

    class Config:
        from_attributes = True


class MessageResponse(BaseModel):
    id: str
    chatroom_id: str
    author_id: str
    display_content: str
    created_at: datetime
    replying_to_id: Optional[str]
    is_deleted: bool
    curator_kind: str
    author_nickname: str
    is_curator: bool
    parent: Optional[ParentPreviewResponse]
    like_count: int
    dislike_count: int
    comment_count: int
    viewer_has_liked: bool
    viewer_has_disliked: bool

    class Config:
        from_attributes = True


class SendResponse(BaseModel):
    message: MessageResponse
    is_command: bool
    keyword: Optional[str]


class ReactionResponse(BaseModel):
    message_id: str
    like_count: int
    dislike_count: int
    viewer_has_liked: bool
    viewer_has_disliked: bool


class CommentResponse(BaseModel):
    id: str
    message_id: str
    author_id: str
    display_content: str
    created_at: datetime
    replying_to_id: Optional[str]
    is_deleted: bool
    author_nickname: str

    class Config:
        from_attributes = True


class CommentNodeResponse(BaseModel):
    comment: CommentResponse
    children: List["CommentNodeResponse"] = []

    class Config:
        from_attributes = True


CommentNodeResponse.model_rebuild()


def qa_answerer(session_factory, generator, settings: Settings):
    """Q&A call bound to its own session so it can run after the response"""
    def ask(question: str, room_id: str):
        db = session_factory()
        try:
            store = SqlEntityStore(db, get_change_feed())
            QACurator(db, store, generator, settings).answer(question, room_id)
        finally:
            db.close()
    return ask


# Endpoints
@router.get("/chatrooms/{chatroom_id}/messages", response_model=List[MessageResponse])
async def list_messages(
    chatroom_id: UUID,
    offset: int = 0,
    limit: Optional[int] = None,
    viewer: Optional[UUID] = Depends(get_viewer),
    store: SqlEntityStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
):
    """Newest-first page of messages with reaction state for the caller"""
    rows = store.fetch_messages(chatroom_id, viewer, offset=offset, limit=limit or settings.feed_page_size)
    return [MessageResponse.model_validate(normalize_message(row)) for row in rows]


@router.post("/chatrooms/{chatroom_id}/messages", response_model=SendResponse, status_code=201)
async def send_message(
    chatroom_id: UUID,
    payload: MessageCreate,
    background_tasks: BackgroundTasks,
    viewer: UUID = Depends(require_viewer),
    store: SqlEntityStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
    session_factory=Depends(get_session_factory),
    generator=Depends(get_generator),
):
    """
    Post a message

    The message is stored first in every case. A command message with a
    question additionally schedules a curator answer after the response.
    """
    if not payload.content.strip():
        raise HTTPException(status_code=400, detail="Message content is required")

    try:
        row = store.insert_message(chatroom_id, viewer, payload.content, payload.replying_to_id)
    except TopichatError as e:
        raise http_error(e)

    dispatcher = CommandDispatcher(
        settings.command_keywords,
        ask=qa_answerer(session_factory, generator, settings),
        submit=background_tasks.add_task,
    )
    result = dispatcher.dispatch(payload.content, str(chatroom_id))

    return SendResponse(
        message=MessageResponse.model_validate(normalize_message(row)),
        is_command=result.is_command,
        keyword=result.keyword,
    )


@router.delete("/messages/{message_id}", response_model=MessageResponse)
async def delete_message(
    message_id: UUID,
    viewer: UUID = Depends(require_viewer),
    store: SqlEntityStore = Depends(get_store),
):
    """Soft-delete a message (author only)"""
    try:
        row = store.soft_delete_message(message_id, viewer)
    except TopichatError as e:
        raise http_error(e)
    return MessageResponse.model_validate(normalize_message(row))


@router.post("/messages/{message_id}/reactions/{kind}", response_model=ReactionResponse)
async def toggle_reaction(
    message_id: UUID,
    kind: str,
    viewer: UUID = Depends(require_viewer),
    store: SqlEntityStore = Depends(get_store),
):
    """Toggle like or dislike; the two are mutually exclusive"""
    if kind not in ("like", "dislike"):
        raise HTTPException(status_code=400, detail="Reaction must be 'like' or 'dislike'")

    try:
        current = ReactionState.from_summary(store.reaction_summary(message_id, viewer))
        return store.set_reaction(message_id, viewer, toggled(current, kind).active_kind)
    except TopichatError as e:
        raise http_error(e)


@router.get("/messages/{message_id}/comments", response_model=List[CommentNodeResponse])
async def get_comments(message_id: UUID, store: SqlEntityStore = Depends(get_store)):
    """Comments under a message as a reply tree"""
    comments = [normalize_comment(row) for row in store.fetch_comments(message_id)]
    return [CommentNodeResponse.model_validate(node) for node in build_tree(comments)]


@router.post("/messages/{message_id}/comments", response_model=CommentResponse, status_code=201)
async def create_comment(
    message_id: UUID,
    payload: CommentCreate,
    viewer: UUID = Depends(require_viewer),
    store: SqlEntityStore = Depends(get_store),
):
    """Comment on a message, optionally replying to another comment"""
    if not payload.content.strip():
        raise HTTPException(status_code=400, detail="Comment content is required")

    try:
        row = store.insert_comment(message_id, viewer, payload.content, payload.replying_to_id)
    except TopichatError as e:
        raise http_error(e)
    return CommentResponse.model_validate(normalize_comment(row))


@router.delete("/comments/{comment_id}", response_model=CommentResponse)
async def delete_comment(
    comment_id: UUID,
    viewer: UUID = Depends(require_viewer),
    store: SqlEntityStore = Depends(get_store),
):
    """Soft-delete a comment (author only); replies stay in place"""
    try:
        row = store.soft_delete_comment(comment_id, viewer)
    except TopichatError as e:
        raise http_error(e)
    return CommentResponse.model_validate(normalize_comment(row))
