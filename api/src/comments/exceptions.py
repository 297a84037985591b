"""Comment errors."""

from uuid import UUID

from src.core.exceptions import NotFoundError, ValidationFailedError


class CommentNotFoundError(NotFoundError):
    """Comment not found or soft-deleted."""

    def __init__(self, comment_id: UUID):
        super().__init__(f"Comment {comment_id} not found", "comment_not_found")
        self.comment_id = comment_id


class InvalidReplyTargetError(ValidationFailedError):
    """Reply target belongs to a different entity."""

    def __init__(self, message: str = "Reply target belongs to another entity"):
        super().__init__(message, "invalid_reply_target")


class InvalidCommentTextError(ValidationFailedError):
    """Comment text is empty or too long."""

    def __init__(self, message: str):
        super().__init__(message, "invalid_comment_text")


class UnsupportedEntityKindError(ValidationFailedError):
    """Entity kind is unknown, or not valid for the operation."""

    def __init__(self, message: str):
        super().__init__(message, "unsupported_entity_kind")
