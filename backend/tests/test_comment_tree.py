"""
Unit tests for the comment tree builder
"""
from datetime import datetime, timedelta

from topichat.services.comment_tree import build_tree, walk
from topichat.services.entities import DELETED_PLACEHOLDER, Comment

BASE = datetime(2024, 12, 1, 10, 0)


def comment(comment_id, parent=None, minute=0, deleted=False):
    return Comment(
        id=comment_id,
        message_id="m1",
        author_id="u1",
        content=f"comment {comment_id}",
        created_at=BASE + timedelta(minutes=minute),
        replying_to_id=parent,
        is_deleted=deleted,
    )


def all_ids(forest):
    return [node.comment.id for _, node in walk(forest)]


class TestBuildTree:
    """Test suite for reply hierarchy reconstruction"""

    def test_nested_replies(self):
        """Replies attach under their parent at any depth"""
        forest = build_tree([
            comment("a", minute=0),
            comment("b", parent="a", minute=1),
            comment("c", parent="b", minute=2),
            comment("d", minute=3),
        ])

        assert [n.comment.id for n in forest] == ["a", "d"]
        assert forest[0].children[0].comment.id == "b"
        assert forest[0].children[0].children[0].comment.id == "c"

    def test_every_comment_appears_exactly_once(self):
        """The forest is well-formed for any input"""
        flat = [
            comment("a"),
            comment("b", parent="a", minute=1),
            comment("c", parent="missing", minute=2),
            comment("d", parent="b", minute=3),
            comment("e", parent="a", minute=4),
        ]
        ids = all_ids(build_tree(flat))

        assert sorted(ids) == sorted(c.id for c in flat)
        assert len(ids) == len(set(ids))

    def test_children_keep_input_order(self):
        """Siblings stay in the order they were fetched"""
        forest = build_tree([
            comment("root"),
            comment("first", parent="root", minute=1),
            comment("second", parent="root", minute=2),
            comment("third", parent="root", minute=3),
        ])

        assert [c.comment.id for c in forest[0].children] == ["first", "second", "third"]

    def test_missing_parent_is_demoted_to_root(self):
        """A reply whose parent was not fetched shows at the top level"""
        forest = build_tree([
            comment("a"),
            comment("orphan", parent="not-in-page", minute=1),
        ])

        assert [n.comment.id for n in forest] == ["a", "orphan"]
        assert forest[1].children == []

    def test_reply_listed_before_parent(self):
        """Parent lookup does not depend on input order"""
        forest = build_tree([
            comment("child", parent="parent", minute=1),
            comment("parent", minute=0),
        ])

        assert [n.comment.id for n in forest] == ["parent"]
        assert forest[0].children[0].comment.id == "child"

    def test_deleted_comment_keeps_its_replies(self):
        """Soft-deleting a comment never removes the replies under it"""
        forest = build_tree([
            comment("a", deleted=True),
            comment("b", parent="a", minute=1),
        ])

        assert forest[0].comment.display_content == DELETED_PLACEHOLDER
        assert forest[0].children[0].comment.display_content == "comment b"

    def test_reply_cycle_is_broken(self):
        """Two comments replying to each other still both appear"""
        forest = build_tree([
            comment("a", parent="b", minute=0),
            comment("b", parent="a", minute=1),
            comment("c", minute=2),
        ])

        assert sorted(all_ids(forest)) == ["a", "b", "c"]
        assert [n.comment.id for n in forest] == ["c", "a"]
        assert forest[1].children[0].comment.id == "b"

    def test_empty_input(self):
        assert build_tree([]) == []


class TestWalk:
    """Test suite for depth-first traversal"""

    def test_depths(self):
        forest = build_tree([
            comment("a"),
            comment("b", parent="a", minute=1),
            comment("c", parent="b", minute=2),
            comment("d", minute=3),
        ])

        assert [(depth, node.comment.id) for depth, node in walk(forest)] == [
            (0, "a"), (1, "b"), (2, "c"), (0, "d"),
        ]
