"""
Reaction/Engagement Aggregator
Like/dislike toggling with optimistic local projection and exact rollback
"""
import logging
from dataclasses import dataclass, replace
from typing import Callable, Optional

from topichat.errors import StoreError
from topichat.services.entities import FeedMessage

logger = logging.getLogger(__name__)

LIKE = "like"
DISLIKE = "dislike"


@dataclass(frozen=True)
class ReactionState:
    """Counts plus the viewer's own reaction for one message"""
    like_count: int = 0
    dislike_count: int = 0
    liked: bool = False
    disliked: bool = False

    @property
    def active_kind(self) -> Optional[str]:
        if self.liked:
            return LIKE
        if self.disliked:
            return DISLIKE
        return None

    @classmethod
    def of(cls, message: FeedMessage) -> "ReactionState":
        return cls(
            like_count=message.like_count,
            dislike_count=message.dislike_count,
            liked=message.viewer_has_liked,
            disliked=message.viewer_has_disliked,
        )

    @classmethod
    def from_summary(cls, summary: dict) -> "ReactionState":
        return cls(
            like_count=summary["like_count"],
            dislike_count=summary["dislike_count"],
            liked=summary["viewer_has_liked"],
            disliked=summary["viewer_has_disliked"],
        )

    def applied_to(self, message: FeedMessage) -> FeedMessage:
        return replace(
            message,
            like_count=self.like_count,
            dislike_count=self.dislike_count,
            viewer_has_liked=self.liked,
            viewer_has_disliked=self.disliked,
        )


def toggled(state: ReactionState, kind: str) -> ReactionState:
    """
    Toggle one reaction kind

    Turning a kind on clears the other kind; toggling the active kind clears it.
    """
    if kind not in (LIKE, DISLIKE):
        raise ValueError(f"Unknown reaction kind: {kind}")

    like_count, dislike_count = state.like_count, state.dislike_count
    liked, disliked = state.liked, state.disliked

    if kind == LIKE:
        if liked:
            liked, like_count = False, like_count - 1
        else:
            liked, like_count = True, like_count + 1
            if disliked:
                disliked, dislike_count = False, dislike_count - 1
    else:
        if disliked:
            disliked, dislike_count = False, dislike_count - 1
        else:
            disliked, dislike_count = True, dislike_count + 1
            if liked:
                liked, like_count = False, like_count - 1

    return ReactionState(
        like_count=max(like_count, 0),
        dislike_count=max(dislike_count, 0),
        liked=liked,
        disliked=disliked,
    )


class ReactionAggregator:
    """
    Applies reaction toggles for one viewer

    `read` and `write` give access to the owner's current ReactionState for a
    message, so the aggregator never keeps a second copy of the counts.
    The new state is written before the store round-trip; on failure the
    snapshot captured beforehand is written back unchanged.
    """

    def __init__(
        self,
        store,
        viewer_id: Optional[str],
        read: Callable[[str], Optional[ReactionState]],
        write: Callable[[str, ReactionState], None],
    ):
        self.store = store
        self.viewer_id = viewer_id
        self._read = read
        self._write = write

    def toggle_like(self, message_id: str) -> Optional[ReactionState]:
        return self.toggle(message_id, LIKE)

    def toggle_dislike(self, message_id: str) -> Optional[ReactionState]:
        return self.toggle(message_id, DISLIKE)

    def toggle(self, message_id: str, kind: str) -> Optional[ReactionState]:
        """Returns the settled state, or None when nothing was applied"""
        if self.viewer_id is None:
            return None

        snapshot = self._read(message_id)
        if snapshot is None:
            return None

        optimistic = toggled(snapshot, kind)
        self._write(message_id, optimistic)

        try:
            summary = self.store.set_reaction(message_id, self.viewer_id, optimistic.active_kind)
        except StoreError:
            logger.warning("Reaction %s on %s failed, restoring previous state", kind, message_id)
            self._write(message_id, snapshot)
            raise

        settled = ReactionState.from_summary(summary)
        self._write(message_id, settled)
        return settled
