"""Services package initialization"""
from topichat.services.comment_tree import CommentTree, build_tree
from topichat.services.commands import CommandDispatcher
from topichat.services.feed_sync import MessageFeed
from topichat.services.reactions import ReactionAggregator
from topichat.services.snapshot_cache import FeedSnapshotCache
from topichat.services.store import SqlEntityStore

__all__ = [
    "CommentTree",
    "build_tree",
    "CommandDispatcher",
    "MessageFeed",
    "ReactionAggregator",
    "FeedSnapshotCache",
    "SqlEntityStore",
]
