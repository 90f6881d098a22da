"""
Per-room feed snapshots kept across navigation
"""
import threading
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from topichat.services.entities import FeedMessage


@dataclass(frozen=True)
class FeedSnapshot:
    """What a viewer was looking at when leaving a room"""
    messages: Tuple[FeedMessage, ...]
    has_more: bool
    scroll_top: float


class FeedSnapshotCache:
    """
    Write-on-leave / read-once cache keyed by room id

    `take` removes the entry, so a snapshot is restored at most once and
    the feed then reconciles against the store.
    """

    def __init__(self):
        self._entries: Dict[str, FeedSnapshot] = {}
        self._lock = threading.Lock()

    def save(self, room_id: str, snapshot: FeedSnapshot):
        with self._lock:
            self._entries[str(room_id)] = snapshot

    def take(self, room_id: str) -> Optional[FeedSnapshot]:
        with self._lock:
            return self._entries.pop(str(room_id), None)

    def invalidate(self, room_id: str):
        with self._lock:
            self._entries.pop(str(room_id), None)

    def __contains__(self, room_id) -> bool:
        with self._lock:
            return str(room_id) in self._entries
