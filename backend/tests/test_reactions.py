"""
Unit tests for reaction toggling and the optimistic aggregator
"""
import pytest

from topichat.errors import StoreError
from topichat.services.reactions import (
    DISLIKE,
    LIKE,
    ReactionAggregator,
    ReactionState,
    toggled,
)


class TestToggled:
    """Test suite for the pure toggle transition"""

    def test_like_then_dislike_then_dislike(self):
        """Like and dislike are mutually exclusive"""
        state = ReactionState()

        state = toggled(state, LIKE)
        assert (state.liked, state.disliked) == (True, False)
        assert (state.like_count, state.dislike_count) == (1, 0)

        state = toggled(state, DISLIKE)
        assert (state.liked, state.disliked) == (False, True)
        assert (state.like_count, state.dislike_count) == (0, 1)

        state = toggled(state, DISLIKE)
        assert (state.liked, state.disliked) == (False, False)
        assert (state.like_count, state.dislike_count) == (0, 0)

    def test_other_viewers_counts_are_kept(self):
        state = toggled(ReactionState(like_count=5, dislike_count=2), LIKE)
        assert (state.like_count, state.dislike_count) == (6, 2)

    def test_counts_never_go_negative(self):
        """A stale projection cannot produce a negative count"""
        state = toggled(ReactionState(like_count=0, liked=True), LIKE)
        assert state.like_count == 0
        assert not state.liked

    def test_unknown_kind(self):
        with pytest.raises(ValueError):
            toggled(ReactionState(), "love")

    def test_active_kind(self):
        assert ReactionState(liked=True).active_kind == LIKE
        assert ReactionState(disliked=True).active_kind == DISLIKE
        assert ReactionState().active_kind is None


class RecordingStore:
    """Answers set_reaction like the real store would, or fails on demand"""

    def __init__(self, fail=False):
        self.fail = fail
        self.calls = []

    def set_reaction(self, message_id, user_id, kind):
        self.calls.append((message_id, user_id, kind))
        if self.fail:
            raise StoreError("connection lost")
        return {
            "message_id": message_id,
            "like_count": 10 if kind == LIKE else 9,
            "dislike_count": 1 if kind == DISLIKE else 0,
            "viewer_has_liked": kind == LIKE,
            "viewer_has_disliked": kind == DISLIKE,
        }


class TestReactionAggregator:
    """Test suite for optimistic toggles with rollback"""

    def setup_method(self):
        self.states = {"m1": ReactionState(like_count=9, dislike_count=0)}
        self.writes = []

    def write(self, message_id, state):
        self.writes.append(state)
        self.states[message_id] = state

    def aggregator(self, store, viewer_id="viewer"):
        return ReactionAggregator(store, viewer_id, read=self.states.get, write=self.write)

    def test_optimistic_then_settled(self):
        """The projection updates before the store answers, then takes its answer"""
        store = RecordingStore()
        settled = self.aggregator(store).toggle_like("m1")

        assert store.calls == [("m1", "viewer", LIKE)]
        assert self.writes[0] == ReactionState(like_count=10, dislike_count=0, liked=True)
        assert settled == ReactionState(like_count=10, dislike_count=0, liked=True)
        assert self.states["m1"] == settled

    def test_failure_restores_exact_snapshot(self):
        """A failed store call puts back the pre-toggle state unchanged"""
        before = ReactionState(like_count=4, dislike_count=3, liked=False, disliked=True)
        self.states["m1"] = before
        aggregator = self.aggregator(RecordingStore(fail=True))

        with pytest.raises(StoreError):
            aggregator.toggle_like("m1")

        assert self.states["m1"] == before
        assert self.writes[-1] is before

    def test_clearing_sends_no_kind(self):
        self.states["m1"] = ReactionState(like_count=1, liked=True)
        store = RecordingStore()
        self.aggregator(store).toggle_like("m1")
        assert store.calls == [("m1", "viewer", None)]

    def test_no_viewer_is_a_no_op(self):
        store = RecordingStore()
        assert self.aggregator(store, viewer_id=None).toggle_like("m1") is None
        assert store.calls == []
        assert self.writes == []

    def test_unknown_message_is_a_no_op(self):
        store = RecordingStore()
        assert self.aggregator(store).toggle_dislike("nope") is None
        assert store.calls == []
