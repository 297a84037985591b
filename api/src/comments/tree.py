"""Two-level comment threads from flat query results."""

from typing import NamedTuple
from uuid import UUID

import structlog

from .models import CommentWithAuthor


logger = structlog.get_logger(__name__)


class CommentThread(NamedTuple):
    """A root comment and its direct replies, both in input order."""

    root: CommentWithAuthor
    replies: list[CommentWithAuthor]


def build_comment_tree(items: list[CommentWithAuthor]) -> list[CommentThread]:
    """Group a flat, ordered list into root comments with their replies.

    Roots keep their relative order, as do the replies under each root.
    A reply whose root is not in ``items`` appears nowhere in the output.
    """
    threads: dict[UUID, CommentThread] = {}
    for item in items:
        if not item.comment.is_reply:
            threads[item.comment.id] = CommentThread(root=item, replies=[])

    dropped = 0
    for item in items:
        parent_id = item.comment.replied_comment_id
        if parent_id is None:
            continue
        thread = threads.get(parent_id)
        if thread is None:
            dropped += 1
            continue
        thread.replies.append(item)

    if dropped:
        logger.debug("orphan_replies_dropped", count=dropped)

    return list(threads.values())
