"""Pydantic schemas for comments.

Request/Response models for:
- Comment create and update
- Threaded comment lists and the comments feed
- Reply and feed filters
"""

from datetime import datetime
from typing import Generic, TypeVar
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from src.posts.models import Post
from src.users.schemas import UserResponse

from .models import Comment, EntityKind


T = TypeVar("T")

MAX_FEED_PAGE_SIZE = 100


# ==============================================================================
# Request Schemas
# ==============================================================================


class CreateCommentRequest(BaseModel):
    """Request to create a comment or a reply."""

    text: str = Field(..., min_length=1)
    replied_comment_id: UUID | None = None

    @field_validator("text")
    @classmethod
    def validate_text(cls, v: str) -> str:
        """Strip whitespace and validate text."""
        v = v.strip()
        if not v:
            msg = "Text cannot be empty"
            raise ValueError(msg)
        return v


class UpdateCommentRequest(BaseModel):
    """Request to edit a comment.

    When ``concurrency_stamp`` is given, the update only applies if the
    stored comment still carries that stamp.
    """

    text: str = Field(..., min_length=1)
    concurrency_stamp: str | None = None

    @field_validator("text")
    @classmethod
    def validate_text(cls, v: str) -> str:
        v = v.strip()
        if not v:
            msg = "Text cannot be empty"
            raise ValueError(msg)
        return v


class ReplyListFilter(BaseModel):
    """Filter for the replies of a comment."""

    filter: str | None = None
    entity_type: EntityKind | None = None
    author_username: str | None = None
    creation_start_date: datetime | None = None
    creation_end_date: datetime | None = None


class CommentsFeedFilter(BaseModel):
    """Filter and page for the comments feed."""

    filter: str | None = None
    author_username: str | None = None
    skip_count: int = Field(0, ge=0)
    max_result_count: int = Field(20, ge=1, le=MAX_FEED_PAGE_SIZE)


# ==============================================================================
# Response Schemas
# ==============================================================================


class CommentResponse(BaseModel):
    """Response for a single comment."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    entity_type: EntityKind
    entity_id: str
    text: str
    replied_comment_id: UUID | None = None
    creator_id: UUID
    creation_time: datetime
    last_modification_time: datetime | None = None
    is_deleted: bool = False
    concurrency_stamp: str
    author: UserResponse | None = None

    @classmethod
    def from_comment(
        cls, comment: Comment, author: UserResponse | None = None
    ) -> "CommentResponse":
        """Create response from Comment entity."""
        return cls(
            id=comment.id,
            entity_type=comment.entity.kind,
            entity_id=comment.entity.id,
            text=comment.text,
            replied_comment_id=comment.replied_comment_id,
            creator_id=comment.creator_id,
            creation_time=comment.creation_time,
            last_modification_time=comment.last_modification_time,
            is_deleted=comment.is_deleted,
            concurrency_stamp=comment.concurrency_stamp,
            author=author,
        )


class CommentWithDetailsResponse(CommentResponse):
    """Root comment with its author and direct replies."""

    replies: list[CommentResponse] = Field(default_factory=list)


class CommentsFeedItemResponse(CommentWithDetailsResponse):
    """Feed entry: a root comment plus the post it was written on."""

    post_slug: str | None = None
    post_title: str | None = None
    post_creation_date: datetime | None = None
    post_community_name: str | None = None

    @classmethod
    def from_details(
        cls, details: CommentWithDetailsResponse, post: Post
    ) -> "CommentsFeedItemResponse":
        return cls(
            **details.model_dump(exclude={"author", "replies"}),
            author=details.author,
            replies=details.replies,
            post_slug=post.slug,
            post_title=post.title,
            post_creation_date=post.creation_time,
            post_community_name=post.author_user_name,
        )


class ListResultResponse(BaseModel, Generic[T]):
    """Unpaged list of results."""

    items: list[T]


class MessageResponse(BaseModel):
    """Generic message response."""

    success: bool = True
    message: str | None = None
