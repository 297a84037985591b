"""Authorization decisions over (caller, comment)."""

from src.auth.schemas import Caller

from .models import Comment


def can_update_comment(caller: Caller, comment: Comment) -> bool:
    """Only the author may edit a comment."""
    return caller.id == comment.creator_id


def can_delete_comment(caller: Caller, comment: Comment) -> bool:
    """The author or an admin may delete a comment."""
    return caller.id == comment.creator_id or caller.is_admin
