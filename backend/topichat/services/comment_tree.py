"""
Comment Tree Builder
Rebuilds the reply hierarchy of a message's comments from a flat list
"""
from dataclasses import dataclass, field
from typing import Iterator, List, Sequence, Tuple

from topichat.services.entities import Comment


@dataclass
class CommentTree:
    """A comment and its direct replies"""
    comment: Comment
    children: List["CommentTree"] = field(default_factory=list)


def build_tree(flat_comments: Sequence[Comment]) -> List[CommentTree]:
    """
    Build a forest of reply trees

    Children keep the order of the input, so callers sort by created_at
    first. A comment whose parent is not in the input (for example, cut off
    by a page boundary) is placed at the root level instead of being dropped,
    and so is any comment caught in a reply cycle.
    """
    index = {c.id: CommentTree(comment=c) for c in flat_comments}

    roots: List[CommentTree] = []
    for comment in flat_comments:
        node = index[comment.id]
        parent = index.get(comment.replying_to_id) if comment.replying_to_id else None
        if parent is not None and parent is not node:
            parent.children.append(node)
        else:
            roots.append(node)

    reachable = {id(node) for _, node in walk(roots)}
    for comment in flat_comments:
        node = index[comment.id]
        if id(node) in reachable:
            continue
        # Cut the cycle at this node
        parent = index[comment.replying_to_id]
        parent.children = [child for child in parent.children if child is not node]
        roots.append(node)
        reachable.update(id(n) for _, n in walk([node]))
    return roots


def walk(forest: Sequence[CommentTree], depth: int = 0) -> Iterator[Tuple[int, CommentTree]]:
    """Depth-first traversal yielding (depth, node) for indented rendering"""
    for node in forest:
        yield depth, node
        yield from walk(node.children, depth + 1)
