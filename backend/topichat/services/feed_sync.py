"""
Message Feed Synchronizer
Keeps one viewer's ordered message list for a room consistent across the
initial page load, scroll-back pagination, change-feed events and local
optimistic mutations.

All state changes are pure FeedState -> FeedState functions applied under a
single lock, so a pagination prepend and a realtime insert landing at the
same moment both take effect. Change-feed events are queued and applied once
the lock is free, so a feed never waits on another feed's lock.
"""
import bisect
import logging
import threading
import uuid
from abc import ABC, abstractmethod
from collections import deque
from contextlib import contextmanager
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Callable, List, Optional, Sequence, Tuple

from topichat.errors import PermissionDeniedError, StoreError
from topichat.services.change_feed import ChangeEvent, DELETE
from topichat.services.commands import CommandDispatcher
from topichat.services.entities import (
    FeedMessage,
    RoomAccess,
    has_aggregates,
    normalize_message,
)
from topichat.services.reactions import ReactionAggregator, ReactionState
from topichat.services.snapshot_cache import FeedSnapshot, FeedSnapshotCache
from topichat.services.store import EntityStore

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 30
NEAR_BOTTOM_THRESHOLD = 100  # px
LOCAL_AUTHOR_ID = "system"


@dataclass(frozen=True)
class FeedNotice:
    """Inline, non-blocking notice shown to the viewer"""
    level: str
    text: str


@dataclass(frozen=True)
class FeedState:
    """Messages ascending by (created_at, id) plus pagination flags"""
    messages: Tuple[FeedMessage, ...] = ()
    has_more: bool = True
    has_new_messages: bool = False

    def find(self, message_id: str) -> Optional[FeedMessage]:
        for message in self.messages:
            if message.id == message_id:
                return message
        return None

    def __contains__(self, message_id) -> bool:
        return self.find(str(message_id)) is not None

    @property
    def persisted_count(self) -> int:
        return sum(1 for m in self.messages if not m.is_local)


# State transitions


def from_page(newest_first: Sequence[FeedMessage], page_size: int) -> FeedState:
    """State for a freshly loaded newest page"""
    return FeedState(
        messages=tuple(reversed(newest_first)),
        has_more=len(newest_first) >= page_size,
    )


def prepend_page(state: FeedState, newest_first: Sequence[FeedMessage], page_size: int) -> FeedState:
    """Put an older page in front; ids already held are skipped"""
    held = {m.id for m in state.messages}
    older = tuple(m for m in reversed(newest_first) if m.id not in held)
    return replace(
        state,
        messages=older + state.messages,
        has_more=len(newest_first) >= page_size,
    )


def merge_message(state: FeedState, message: FeedMessage) -> FeedState:
    """Replace the entry with the same id, or insert at its sorted position"""
    messages = list(state.messages)
    for i, current in enumerate(messages):
        if current.id == message.id:
            messages[i] = message
            return replace(state, messages=tuple(messages))

    keys = [m.sort_key for m in messages]
    messages.insert(bisect.bisect_right(keys, message.sort_key), message)
    return replace(state, messages=tuple(messages))


def update_message(state: FeedState, message_id: str,
                   change: Callable[[FeedMessage], FeedMessage]) -> FeedState:
    return replace(
        state,
        messages=tuple(change(m) if m.id == message_id else m for m in state.messages),
    )


def remove_message(state: FeedState, message_id: str) -> FeedState:
    return replace(state, messages=tuple(m for m in state.messages if m.id != message_id))


# Viewport


class Viewport(ABC):
    """The scrollable container the feed renders into"""

    @property
    @abstractmethod
    def scroll_top(self) -> float:
        """Distance scrolled from the top"""

    @property
    @abstractmethod
    def scroll_height(self) -> float:
        """Total height of the rendered content"""

    @property
    @abstractmethod
    def client_height(self) -> float:
        """Visible height of the container"""

    @abstractmethod
    def render(self, messages: Sequence[FeedMessage]):
        """Re-render after a state change; scroll_height reflects it afterwards"""

    @abstractmethod
    def scroll_to(self, top: float, smooth: bool = False):
        """Move the scroll position"""


def is_near_bottom(viewport: Viewport, threshold: float = NEAR_BOTTOM_THRESHOLD) -> bool:
    return viewport.scroll_height - viewport.scroll_top - viewport.client_height <= threshold


def anchored_scroll_top(previous_top: float, old_height: float, new_height: float) -> float:
    """Scroll position that keeps the same message under the viewport top after a prepend"""
    return previous_top + (new_height - old_height)


class MessageFeed:
    """
    The message list one viewer sees in one room

    Use as a context manager, or pair open() with close(), so change-feed
    subscriptions never outlive the view.
    """

    def __init__(
        self,
        room_id: str,
        store: EntityStore,
        viewport: Viewport,
        viewer_id: Optional[str] = None,
        dispatcher: Optional[CommandDispatcher] = None,
        cache: Optional[FeedSnapshotCache] = None,
        page_size: int = DEFAULT_PAGE_SIZE,
        near_bottom_threshold: float = NEAR_BOTTOM_THRESHOLD,
    ):
        self.room_id = str(room_id)
        self.store = store
        self.viewport = viewport
        self.viewer_id = str(viewer_id) if viewer_id else None
        self.dispatcher = dispatcher
        self.cache = cache
        self.page_size = page_size
        self.near_bottom_threshold = near_bottom_threshold

        self.access = RoomAccess(room_id=self.room_id, viewer_id=self.viewer_id)
        self.notices: List[FeedNotice] = []

        self._state = FeedState()
        self._lock = threading.RLock()
        self._depth = 0
        self._inbox = deque()
        self._subscriptions = []
        self._loading_older = False

        self.reactions = ReactionAggregator(
            store=store,
            viewer_id=self.viewer_id,
            read=self._read_reactions,
            write=self._write_reactions,
        )
        if dispatcher is not None and dispatcher.on_failure is None:
            dispatcher.on_failure = self._curator_failed

    @property
    def state(self) -> FeedState:
        return self._state

    @property
    def messages(self) -> Tuple[FeedMessage, ...]:
        return self._state.messages

    @property
    def is_open(self) -> bool:
        return bool(self._subscriptions)

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False

    # Lifecycle

    def open(self):
        """Subscribe, restore a cached snapshot or load the newest page, mark read"""
        with self._exclusive():
            if self.is_open:
                return
            try:
                self._subscriptions = [
                    self.store.subscribe("messages", self.handle_message_event, chatroom_id=self.room_id),
                    self.store.subscribe("message_reactions", self.handle_reaction_event),
                ]
                self.access = self.store.room_access(self.room_id, self.viewer_id)

                snapshot = self.cache.take(self.room_id) if self.cache else None
                if snapshot is not None:
                    self._restore(snapshot)
                else:
                    self._load_initial()
                self._mark_read()
            except StoreError as e:
                logger.error("Opening room %s failed: %s", self.room_id, e)
                self._notify("error", "메시지를 불러오지 못했습니다.")
            except Exception:
                self._unsubscribe()
                raise

    def close(self):
        """Unsubscribe and remember the current view for the next visit"""
        with self._exclusive():
            was_open = self.is_open
            self._unsubscribe()
            if was_open and self.cache is not None:
                self.cache.save(self.room_id, FeedSnapshot(
                    messages=tuple(m for m in self._state.messages if not m.is_local),
                    has_more=self._state.has_more,
                    scroll_top=self.viewport.scroll_top,
                ))

    def _unsubscribe(self):
        for subscription in self._subscriptions:
            subscription.unsubscribe()
        self._subscriptions = []

    def _load_initial(self):
        page = self._fetch_page(offset=0)
        self._update(lambda _: from_page(page, self.page_size))
        self.viewport.scroll_to(self.viewport.scroll_height)

    def _restore(self, snapshot: FeedSnapshot):
        self._update(lambda _: FeedState(messages=snapshot.messages, has_more=snapshot.has_more))
        self.viewport.scroll_to(snapshot.scroll_top)

        # Reconcile against the store without disturbing the restored position
        page = self._fetch_page(offset=0)
        newest_held = self._state.messages[-1] if self._state.messages else None
        if newest_held and len(page) >= self.page_size and page[-1].sort_key > newest_held.sort_key:
            # More arrived while away than one page covers; the snapshot would leave a hole
            logger.info("Snapshot for room %s is stale, reloading", self.room_id)
            self._update(lambda _: from_page(page, self.page_size))
            self.viewport.scroll_to(self.viewport.scroll_height)
            return
        for message in reversed(page):
            self._update(lambda s, m=message: merge_message(s, m))

    def _mark_read(self):
        if self.viewer_id is None:
            return
        try:
            self.store.mark_read(self.room_id, self.viewer_id)
        except StoreError as e:
            logger.warning("Could not mark room %s read: %s", self.room_id, e)

    # Pagination

    def on_scroll(self):
        """Scroll handler; pages back once the top edge is reached"""
        if self.viewport.scroll_top <= 0:
            self.load_older()
        elif self._state.has_new_messages and is_near_bottom(self.viewport, self.near_bottom_threshold):
            self._update(lambda s: replace(s, has_new_messages=False))

    def load_older(self) -> bool:
        """Prepend the next older page; returns True when a page was applied"""
        with self._exclusive():
            if self._loading_older or not self._state.has_more:
                return False
            self._loading_older = True
            try:
                previous_top = self.viewport.scroll_top
                old_height = self.viewport.scroll_height
                page = self._fetch_page(offset=self._state.persisted_count)
                self._update(lambda s: prepend_page(s, page, self.page_size))
                self.viewport.scroll_to(
                    anchored_scroll_top(previous_top, old_height, self.viewport.scroll_height)
                )
                return True
            except StoreError as e:
                logger.error("Loading older messages for room %s failed: %s", self.room_id, e)
                self._notify("error", "이전 메시지를 불러오지 못했습니다.")
                return False
            finally:
                self._loading_older = False

    def _fetch_page(self, offset: int) -> List[FeedMessage]:
        rows = self.store.fetch_messages(self.room_id, self.viewer_id, offset=offset, limit=self.page_size)
        return [normalize_message(row) for row in rows]

    # Realtime

    def handle_message_event(self, event: ChangeEvent):
        """Change-feed callback for this room's messages"""
        self._deliver(self._apply_message_event, event)

    def handle_reaction_event(self, event: ChangeEvent):
        """Change-feed callback for reactions, including this viewer's other tabs"""
        self._deliver(self._apply_reaction_event, event)

    def _apply_message_event(self, event: ChangeEvent):
        message_id = str(event.row.get("id"))
        if event.kind == DELETE:
            self._update(lambda s: remove_message(s, message_id))
            return

        message = self._full_message(event.row)
        if message is None:
            return

        is_new = message.id not in self._state
        was_near_bottom = is_near_bottom(self.viewport, self.near_bottom_threshold)
        self._update(lambda s: merge_message(s, message))

        if not is_new:
            return
        if was_near_bottom or message.author_id == self.viewer_id:
            self.viewport.scroll_to(self.viewport.scroll_height, smooth=True)
        else:
            self._update(lambda s: replace(s, has_new_messages=True))

    def _apply_reaction_event(self, event: ChangeEvent):
        # Events arrive after the commit, so a refetch is authoritative
        message_id = str(event.row.get("message_id"))
        if message_id not in self._state:
            return
        try:
            row = self.store.fetch_message(message_id, self.viewer_id)
        except StoreError as e:
            logger.warning("Refreshing reactions for %s failed: %s", message_id, e)
            return
        if row is not None:
            message = normalize_message(row)
            self._update(lambda s: merge_message(s, message))

    def _full_message(self, row: dict) -> Optional[FeedMessage]:
        if has_aggregates(row):
            return normalize_message(row)
        try:
            full = self.store.fetch_message(row["id"], self.viewer_id)
        except StoreError as e:
            logger.warning("Fetching message %s failed, using event payload: %s", row.get("id"), e)
            partial = normalize_message(row)
            held = self._state.find(partial.id)
            return ReactionState.of(held).applied_to(partial) if held else partial
        return normalize_message(full) if full else None

    def reveal_new_messages(self):
        """The "new message" affordance was clicked"""
        with self._exclusive():
            self.viewport.scroll_to(self.viewport.scroll_height, smooth=True)
            self._update(lambda s: replace(s, has_new_messages=False))

    # Local mutations

    def send(self, text: str, replying_to_id: Optional[str] = None) -> Optional[FeedMessage]:
        """
        Insert the viewer's message right away, then let the dispatcher
        trigger any curator side-effect in the background
        """
        text = text.strip()
        if self.viewer_id is None or not text:
            return None

        with self._exclusive():
            try:
                row = self.store.insert_message(self.room_id, self.viewer_id, text, replying_to_id)
            except StoreError as e:
                logger.error("Sending message to room %s failed: %s", self.room_id, e)
                self._notify("error", "메시지를 보내지 못했습니다.")
                return None

            message = normalize_message(row)
            self._update(lambda s: merge_message(s, message))
            self.viewport.scroll_to(self.viewport.scroll_height, smooth=True)

        if self.dispatcher is not None:
            self.dispatcher.dispatch(text, self.room_id)
        return message

    def delete(self, message_id: str) -> bool:
        """Soft-delete optimistically; the exact previous entry returns on failure"""
        if self.viewer_id is None:
            return False

        with self._exclusive():
            snapshot = self._state.find(message_id)
            if snapshot is None:
                return False

            self._update(lambda s: update_message(s, message_id, lambda m: replace(m, is_deleted=True)))
            try:
                row = self.store.soft_delete_message(message_id, self.viewer_id)
            except (StoreError, PermissionDeniedError) as e:
                logger.error("Deleting message %s failed: %s", message_id, e)
                self._update(lambda s: update_message(s, message_id, lambda _: snapshot))
                self._notify("error", "메시지를 삭제하지 못했습니다.")
                return False

            self._update(lambda s: merge_message(s, normalize_message(row)))
            return True

    def toggle_like(self, message_id: str) -> Optional[ReactionState]:
        return self._toggle(message_id, self.reactions.toggle_like)

    def toggle_dislike(self, message_id: str) -> Optional[ReactionState]:
        return self._toggle(message_id, self.reactions.toggle_dislike)

    def _toggle(self, message_id: str, toggle) -> Optional[ReactionState]:
        with self._exclusive():
            try:
                return toggle(message_id)
            except StoreError:
                self._notify("error", "반응을 저장하지 못했습니다.")
                return None

    def _read_reactions(self, message_id: str) -> Optional[ReactionState]:
        message = self._state.find(message_id)
        return ReactionState.of(message) if message else None

    def _write_reactions(self, message_id: str, reactions: ReactionState):
        self._update(lambda s: update_message(s, message_id, reactions.applied_to))

    # Notices

    def add_local_message(self, text: str) -> FeedMessage:
        """Append a client-only system message (never persisted)"""
        message = FeedMessage(
            id=f"local-{uuid.uuid4()}",
            chatroom_id=self.room_id,
            author_id=LOCAL_AUTHOR_ID,
            content=text,
            created_at=datetime.utcnow(),
            is_curator=True,
            is_local=True,
        )
        with self._exclusive():
            self._update(lambda s: merge_message(s, message))
        return message

    def _curator_failed(self, room_id: str, error: Exception):
        self._notify("warning", "AI 큐레이터가 답변하지 못했습니다.")
        self.add_local_message(f"AI 큐레이터 응답 생성 중 오류가 발생했습니다: {error}")

    def _notify(self, level: str, text: str):
        self.notices.append(FeedNotice(level=level, text=text))

    # Locking

    @contextmanager
    def _exclusive(self):
        """Hold the feed lock; queued events are applied after the outermost release"""
        try:
            with self._lock:
                self._depth += 1
                try:
                    yield
                finally:
                    self._depth -= 1
        finally:
            self._drain()

    def _deliver(self, handler: Callable[[ChangeEvent], None], event: ChangeEvent):
        self._inbox.append((handler, event))
        self._drain()

    def _drain(self):
        # Whoever releases the lock re-checks the inbox, so no event is stranded
        while self._inbox:
            if not self._lock.acquire(blocking=False):
                return
            try:
                if self._depth:
                    return
                self._depth += 1
                try:
                    while self._inbox:
                        handler, event = self._inbox.popleft()
                        try:
                            handler(event)
                        except Exception:
                            logger.exception("Applying %s %s to room %s failed", event.kind, event.table, self.room_id)
                finally:
                    self._depth -= 1
            finally:
                self._lock.release()

    def _update(self, transition: Callable[[FeedState], FeedState]):
        with self._exclusive():
            self._state = transition(self._state)
            self.viewport.render(self._state.messages)
