"""Comment API endpoints.

Provides routes for:
- Comment create, update and delete
- Threaded comments of an entity
- Replies of a comment
- Feed of the latest comments on posts
"""

from datetime import datetime
from uuid import UUID

import structlog
from fastapi import APIRouter, Query, status

from src.auth.dependencies import CurrentUser
from src.core.exceptions import ServiceError

from .dependencies import CommentServiceDep, EntityDep, handle_comment_error
from .models import EntityKind
from .schemas import (
    MAX_FEED_PAGE_SIZE,
    CommentResponse,
    CommentsFeedFilter,
    CommentsFeedItemResponse,
    CommentWithDetailsResponse,
    CreateCommentRequest,
    ListResultResponse,
    MessageResponse,
    ReplyListFilter,
    UpdateCommentRequest,
)


logger = structlog.get_logger(__name__)


router = APIRouter(prefix="/v1/comments", tags=["comments"])


@router.get(
    "/feed",
    response_model=ListResultResponse[CommentsFeedItemResponse],
    summary="Latest comments on posts",
)
async def get_comments_feed(
    comment_service: CommentServiceDep,
    filter: str | None = Query(None, description="Case-insensitive text filter"),
    author_username: str | None = Query(None),
    skip_count: int = Query(default=0, ge=0),
    max_result_count: int = Query(default=20, ge=1, le=MAX_FEED_PAGE_SIZE),
) -> ListResultResponse[CommentsFeedItemResponse]:
    """Get the newest root comments on posts, with replies and post details."""
    feed_filter = CommentsFeedFilter(
        filter=filter,
        author_username=author_username,
        skip_count=skip_count,
        max_result_count=max_result_count,
    )
    try:
        items = await comment_service.get_feed(feed_filter)
    except ServiceError as e:
        raise handle_comment_error(e) from e
    return ListResultResponse[CommentsFeedItemResponse](items=items)


@router.get(
    "/{comment_id:uuid}/replies",
    response_model=ListResultResponse[CommentResponse],
    summary="Get comment replies",
)
async def get_comment_replies(
    comment_id: UUID,
    comment_service: CommentServiceDep,
    filter: str | None = Query(None, description="Case-insensitive text filter"),
    entity_type: EntityKind | None = Query(None),
    author_username: str | None = Query(None),
    creation_start_date: datetime | None = Query(None),
    creation_end_date: datetime | None = Query(None),
) -> ListResultResponse[CommentResponse]:
    """Get replies to a comment, oldest first."""
    reply_filter = ReplyListFilter(
        filter=filter,
        entity_type=entity_type,
        author_username=author_username,
        creation_start_date=creation_start_date,
        creation_end_date=creation_end_date,
    )
    items = await comment_service.get_replies(comment_id, reply_filter)
    return ListResultResponse[CommentResponse](items=items)


@router.get(
    "/{entity_type}/{entity_id}",
    response_model=ListResultResponse[CommentWithDetailsResponse],
    summary="List entity comments",
)
async def list_entity_comments(
    entity: EntityDep,
    comment_service: CommentServiceDep,
) -> ListResultResponse[CommentWithDetailsResponse]:
    """Get all comments of an entity as root comments with their replies."""
    items = await comment_service.get_list(entity)
    return ListResultResponse[CommentWithDetailsResponse](items=items)


@router.post(
    "/{entity_type}/{entity_id}",
    response_model=CommentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create comment",
)
async def create_comment(
    entity: EntityDep,
    data: CreateCommentRequest,
    comment_service: CommentServiceDep,
    user: CurrentUser,
) -> CommentResponse:
    """Create a comment on an entity, or reply to one of its comments."""
    try:
        return await comment_service.create(user, entity, data)
    except ServiceError as e:
        raise handle_comment_error(e) from e


@router.put(
    "/{comment_id}",
    response_model=CommentResponse,
    summary="Update comment",
)
async def update_comment(
    comment_id: UUID,
    data: UpdateCommentRequest,
    comment_service: CommentServiceDep,
    user: CurrentUser,
) -> CommentResponse:
    """Update a comment's text.

    Only the author can edit. Send the last seen ``concurrency_stamp`` to
    reject the edit if someone else changed the comment meanwhile.
    """
    try:
        return await comment_service.update(user, comment_id, data)
    except ServiceError as e:
        raise handle_comment_error(e) from e


@router.delete(
    "/{comment_id}",
    response_model=MessageResponse,
    summary="Delete comment",
)
async def delete_comment(
    comment_id: UUID,
    comment_service: CommentServiceDep,
    user: CurrentUser,
) -> MessageResponse:
    """Soft-delete a comment. Allowed for the author and admins."""
    try:
        await comment_service.delete(user, comment_id)
    except ServiceError as e:
        raise handle_comment_error(e) from e

    logger.info("comment_delete_requested", comment_id=str(comment_id))
    return MessageResponse(success=True)
