"""Threaded comments on community entities."""

from .models import (
    COMMENTS_TABLES_CQL,
    Comment,
    CommentWithAuthor,
    EntityKind,
    EntityRef,
    create_comment,
)
from .router import router
from .service import CommentService
from .tree import CommentThread, build_comment_tree


__all__ = [
    "COMMENTS_TABLES_CQL",
    "Comment",
    "CommentService",
    "CommentThread",
    "CommentWithAuthor",
    "EntityKind",
    "EntityRef",
    "build_comment_tree",
    "create_comment",
    "router",
]
