"""Comment system service layer.

Business logic for:
- Comment create, update and soft delete with author policies
- Threaded listing per entity, replies, and the posts feed
- Author enrichment with profile pictures
- Post-commit side effects (mention extraction task, created event)
"""

import asyncio
from collections.abc import Iterable
from typing import TYPE_CHECKING
from uuid import UUID

import structlog

from src.core.exceptions import PermissionDeniedError
from src.events.models import CommentCreatedEvent
from src.mentions.models import MentionContentType
from src.tasks.models import TaskName
from src.users.schemas import UserResponse

from .exceptions import InvalidReplyTargetError
from .models import (
    DEFAULT_MAX_TEXT_LENGTH,
    Comment,
    EntityKind,
    EntityRef,
    create_comment,
)
from .policies import can_delete_comment, can_update_comment
from .schemas import (
    CommentResponse,
    CommentsFeedFilter,
    CommentsFeedItemResponse,
    CommentWithDetailsResponse,
    CreateCommentRequest,
    ReplyListFilter,
    UpdateCommentRequest,
)
from .tree import CommentThread, build_comment_tree


if TYPE_CHECKING:
    from src.auth.schemas import Caller
    from src.events.publisher import EventPublisher
    from src.posts.models import Post
    from src.posts.repository import PostRepository
    from src.tasks.queue import TaskEnqueuer
    from src.users.models import User
    from src.users.profile_pictures import ProfilePictureResolver
    from src.users.repository import UserRepository

    from .hooks import PostCommitDispatcher
    from .repository import CommentRepository


logger = structlog.get_logger(__name__)


class CommentService:
    """Service for comment management."""

    def __init__(
        self,
        comments: "CommentRepository",
        users: "UserRepository",
        posts: "PostRepository",
        profile_pictures: "ProfilePictureResolver",
        events: "EventPublisher",
        tasks: "TaskEnqueuer",
        post_commit: "PostCommitDispatcher",
        enrichment_concurrency: int = 8,
        max_text_length: int = DEFAULT_MAX_TEXT_LENGTH,
    ):
        self.comments = comments
        self.users = users
        self.posts = posts
        self.profile_pictures = profile_pictures
        self.events = events
        self.tasks = tasks
        self.post_commit = post_commit
        self.enrichment_concurrency = max(1, enrichment_concurrency)
        self.max_text_length = max_text_length

    # ==========================================================================
    # Commands
    # ==========================================================================

    async def create(
        self,
        caller: "Caller",
        entity: EntityRef,
        request: CreateCommentRequest,
    ) -> CommentResponse:
        """Create a comment, or a reply when ``replied_comment_id`` is set.

        Replies to replies are attached to the root of the thread.

        Raises:
            UserNotFoundError: If the caller has no user record
            PostNotFoundError: If the commented post does not exist
            CommentNotFoundError: If the reply target does not exist
            InvalidReplyTargetError: If the reply target is on another entity
        """
        author = await self.users.get(caller.id)
        if entity.kind is EntityKind.POST:
            await self.posts.get_by_id(entity.post_id())

        replied_comment_id = None
        if request.replied_comment_id is not None:
            target = await self.comments.get(request.replied_comment_id)
            if target.entity != entity:
                raise InvalidReplyTargetError
            replied_comment_id = target.replied_comment_id or target.id

        comment = create_comment(
            creator_id=author.id,
            entity=entity,
            text=request.text,
            replied_comment_id=replied_comment_id,
            max_length=self.max_text_length,
        )
        await self.comments.insert(comment)

        await self.post_commit.dispatch(
            TaskName.CREATE_CONTENT_CASHTAG_MENTIONS,
            lambda: self.tasks.enqueue(
                TaskName.CREATE_CONTENT_CASHTAG_MENTIONS, self._mention_payload(comment)
            ),
        )
        await self.post_commit.dispatch(
            CommentCreatedEvent.event_name,
            lambda: self.events.publish(CommentCreatedEvent(id=comment.id)),
        )

        logger.info(
            "comment_created",
            comment_id=str(comment.id),
            entity_type=entity.kind.value,
            entity_id=entity.id,
            replied_comment_id=str(replied_comment_id) if replied_comment_id else None,
        )
        return CommentResponse.from_comment(comment, UserResponse.from_user(author))

    async def update(
        self,
        caller: "Caller",
        comment_id: UUID,
        request: UpdateCommentRequest,
    ) -> CommentResponse:
        """Edit a comment's text.

        Raises:
            CommentNotFoundError: If the comment does not exist
            PermissionDeniedError: If the caller is not the author
            ConcurrencyConflictError: If the given stamp is stale
        """
        comment = await self.comments.get(comment_id)
        if not can_update_comment(caller, comment):
            raise PermissionDeniedError("Only the author can edit this comment")

        comment.set_text(request.text, self.max_text_length)
        comment.set_concurrency_stamp_if_not_none(request.concurrency_stamp)
        await self.comments.update(comment)

        await self.post_commit.dispatch(
            TaskName.UPDATE_CONTENT_CASHTAG_MENTIONS,
            lambda: self.tasks.enqueue(
                TaskName.UPDATE_CONTENT_CASHTAG_MENTIONS, self._mention_payload(comment)
            ),
        )
        return CommentResponse.from_comment(comment)

    async def delete(self, caller: "Caller", comment_id: UUID) -> bool:
        """Soft-delete a comment.

        Raises:
            CommentNotFoundError: If the comment does not exist
            PermissionDeniedError: If the caller is neither the author nor an admin
        """
        comment = await self.comments.get(comment_id)
        if not can_delete_comment(caller, comment):
            raise PermissionDeniedError("Only the author or an admin can delete this comment")

        await self.comments.delete(comment, caller.id)
        return True

    # ==========================================================================
    # Queries
    # ==========================================================================

    async def get_list(self, entity: EntityRef) -> list[CommentWithDetailsResponse]:
        """Threaded comments of an entity."""
        items = await self.comments.list_with_authors(entity)
        threads = build_comment_tree(items)
        authors = await self._resolve_authors(_thread_authors(threads))
        return [_to_details(thread, authors) for thread in threads]

    async def get_replies(
        self, comment_id: UUID, reply_filter: ReplyListFilter
    ) -> list[CommentResponse]:
        """Replies of a comment matching the filter."""
        items = await self.comments.list(
            text_filter=reply_filter.filter,
            entity_type=reply_filter.entity_type,
            parent_id=comment_id,
            author_username=reply_filter.author_username,
            creation_start=reply_filter.creation_start_date,
            creation_end=reply_filter.creation_end_date,
        )
        authors = await self._resolve_authors(item.author for item in items)
        return [
            CommentResponse.from_comment(item.comment, authors[item.author.id])
            for item in items
        ]

    async def get_feed(
        self, feed_filter: CommentsFeedFilter
    ) -> list[CommentsFeedItemResponse]:
        """Latest post comments with replies and post details.

        Raises:
            UnsupportedEntityKindError: If a feed comment is not on a post
            PostNotFoundError: If a comment's post no longer exists
        """
        items = await self.comments.list_for_feed(feed_filter)
        threads = build_comment_tree(items)

        post_ids = [thread.root.comment.entity.post_id() for thread in threads]
        posts = await self._load_posts(post_ids)
        authors = await self._resolve_authors(_thread_authors(threads))

        return [
            CommentsFeedItemResponse.from_details(
                _to_details(thread, authors), posts[post_id]
            )
            for thread, post_id in zip(threads, post_ids, strict=True)
        ]

    # ==========================================================================
    # Helpers
    # ==========================================================================

    async def _resolve_authors(
        self, users: Iterable["User"]
    ) -> dict[UUID, UserResponse]:
        """Project each distinct author once, with bounded concurrency."""
        distinct = {user.id: user for user in users}
        semaphore = asyncio.Semaphore(self.enrichment_concurrency)

        async def resolve(user: "User") -> UserResponse:
            async with semaphore:
                return await self._author_response(user)

        responses = await asyncio.gather(*(resolve(u) for u in distinct.values()))
        return {response.id: response for response in responses}

    async def _author_response(self, user: "User") -> UserResponse:
        try:
            picture = await self.profile_pictures.get_profile_picture_data_url(user.id)
        except Exception:
            logger.exception("profile_picture_lookup_failed", user_id=str(user.id))
            picture = ""
        return UserResponse.from_user(user, picture)

    async def _load_posts(self, post_ids: list[UUID]) -> dict[UUID, "Post"]:
        distinct = list(dict.fromkeys(post_ids))
        posts = await asyncio.gather(*(self.posts.get_by_id(pid) for pid in distinct))
        return dict(zip(distinct, posts, strict=True))

    @staticmethod
    def _mention_payload(comment: Comment) -> dict[str, str]:
        return {
            "content_id": str(comment.id),
            "content_type": MentionContentType.COMMENT.value,
            "user_id": str(comment.creator_id),
            "text": comment.text,
        }


def _thread_authors(threads: list[CommentThread]) -> Iterable["User"]:
    for thread in threads:
        yield thread.root.author
        for reply in thread.replies:
            yield reply.author


def _to_details(
    thread: CommentThread, authors: dict[UUID, UserResponse]
) -> CommentWithDetailsResponse:
    root = CommentResponse.from_comment(
        thread.root.comment, authors[thread.root.author.id]
    )
    return CommentWithDetailsResponse(
        **root.model_dump(exclude={"author"}),
        author=root.author,
        replies=[
            CommentResponse.from_comment(reply.comment, authors[reply.author.id])
            for reply in thread.replies
        ],
    )
