"""In-memory collaborators for comment service and router tests."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterable
from dataclasses import replace
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock
from uuid import UUID, uuid4

import pytest

from src.auth.permissions import UserRole
from src.auth.schemas import Caller
from src.comments.exceptions import CommentNotFoundError
from src.comments.hooks import PostCommitDispatcher
from src.comments.models import (
    Comment,
    CommentWithAuthor,
    EntityKind,
    EntityRef,
    new_concurrency_stamp,
)
from src.comments.schemas import CommentsFeedFilter
from src.comments.service import CommentService
from src.core.exceptions import ConcurrencyConflictError
from src.posts.models import Post
from src.posts.repository import PostNotFoundError
from src.users.models import User
from src.users.profile_pictures import ProfilePictureError
from src.users.repository import UserNotFoundError


BASE_TIME = datetime(2024, 5, 1, 12, 0, tzinfo=UTC)


class FakeUserStore:
    def __init__(self) -> None:
        self.users: dict[UUID, User] = {}

    def add(self, user_name: str) -> User:
        user = User(
            id=uuid4(),
            user_name=user_name,
            name=user_name.title(),
            surname="Tester",
            email=f"{user_name}@example.com",
            is_active=True,
        )
        self.users[user.id] = user
        return user

    async def get(self, user_id: UUID) -> User:
        if user_id not in self.users:
            raise UserNotFoundError(user_id)
        return self.users[user_id]

    async def get_many(self, user_ids: Iterable[UUID]) -> dict[UUID, User]:
        return {uid: self.users[uid] for uid in user_ids if uid in self.users}

    async def find_by_user_name(self, user_name: str) -> User | None:
        for user in self.users.values():
            if user.user_name.lower() == user_name.lower():
                return user
        return None


class FakeCommentStore:
    """Keeps copies so callers only change stored state through the API."""

    def __init__(self, users: FakeUserStore) -> None:
        self.users = users
        self.rows: dict[UUID, Comment] = {}
        self.insert_calls = 0
        self.update_calls = 0

    def stored(self, comment_id: UUID) -> Comment:
        return self.rows[comment_id]

    def seed(
        self,
        author: User,
        entity: EntityRef,
        text: str = "hello",
        replied_comment_id: UUID | None = None,
        minutes: int = 0,
        comment_id: UUID | None = None,
    ) -> Comment:
        comment = Comment(
            id=comment_id or uuid4(),
            entity=entity,
            creator_id=author.id,
            text=text,
            replied_comment_id=replied_comment_id,
            creation_time=BASE_TIME + timedelta(minutes=minutes),
            last_modification_time=None,
            concurrency_stamp=new_concurrency_stamp(),
        )
        self.rows[comment.id] = comment
        return replace(comment)

    async def get(self, comment_id: UUID) -> Comment:
        comment = self.rows.get(comment_id)
        if comment is None or comment.is_deleted:
            raise CommentNotFoundError(comment_id)
        return replace(comment)

    async def insert(self, comment: Comment) -> Comment:
        self.insert_calls += 1
        self.rows[comment.id] = replace(comment)
        return comment

    async def update(self, comment: Comment) -> Comment:
        self.update_calls += 1
        stored = self.rows[comment.id]
        if stored.concurrency_stamp != comment.concurrency_stamp:
            raise ConcurrencyConflictError
        comment.concurrency_stamp = new_concurrency_stamp()
        self.rows[comment.id] = replace(comment)
        return comment

    async def delete(self, comment: Comment, deleter_id: UUID) -> None:
        comment.mark_deleted(deleter_id)
        self.rows[comment.id] = replace(comment)

    def _live(self) -> list[Comment]:
        live = [c for c in self.rows.values() if not c.is_deleted]
        return sorted(live, key=lambda c: c.creation_time)

    async def _join(self, comments: list[Comment]) -> list[CommentWithAuthor]:
        authors = await self.users.get_many(c.creator_id for c in comments)
        return [
            CommentWithAuthor(replace(c), authors[c.creator_id])
            for c in comments
            if c.creator_id in authors
        ]

    async def list_with_authors(self, entity: EntityRef) -> list[CommentWithAuthor]:
        return await self._join([c for c in self._live() if c.entity == entity])

    async def list(
        self,
        text_filter: str | None = None,
        entity_type: EntityKind | None = None,
        parent_id: UUID | None = None,
        author_username: str | None = None,
        creation_start: datetime | None = None,
        creation_end: datetime | None = None,
    ) -> list[CommentWithAuthor]:
        author = None
        if author_username:
            author = await self.users.find_by_user_name(author_username)
            if author is None:
                return []

        comments = [
            c
            for c in self._live()
            if c.replied_comment_id == parent_id
            and (entity_type is None or c.entity.kind is entity_type)
            and (author is None or c.creator_id == author.id)
            and (not text_filter or text_filter.lower() in c.text.lower())
            and (creation_start is None or c.creation_time >= creation_start)
            and (creation_end is None or c.creation_time <= creation_end)
        ]
        return await self._join(comments)

    async def list_for_feed(
        self, feed_filter: CommentsFeedFilter
    ) -> list[CommentWithAuthor]:
        roots = [
            c
            for c in reversed(self._live())
            if c.entity.kind is EntityKind.POST
            and not c.is_reply
            and (not feed_filter.filter or feed_filter.filter.lower() in c.text.lower())
        ]
        start = feed_filter.skip_count
        page = roots[start : start + feed_filter.max_result_count]

        comments: list[Comment] = []
        for root in page:
            comments.append(root)
            comments.extend(c for c in self._live() if c.replied_comment_id == root.id)
        return await self._join(comments)


class FakePostStore:
    def __init__(self) -> None:
        self.posts: dict[UUID, Post] = {}
        self.lookups: list[UUID] = []

    def add(self, slug: str, community: str = "investors") -> Post:
        post = Post(
            id=uuid4(),
            slug=slug,
            title=slug.replace("-", " ").title(),
            creation_time=BASE_TIME - timedelta(days=1),
            author_id=uuid4(),
            author_user_name=community,
        )
        self.posts[post.id] = post
        return post

    async def get_by_id(self, post_id: UUID) -> Post:
        self.lookups.append(post_id)
        if post_id not in self.posts:
            raise PostNotFoundError(post_id)
        return self.posts[post_id]


class FakeProfilePictures:
    """Records calls and the highest number of concurrent lookups."""

    def __init__(self) -> None:
        self.failing: set[UUID] = set()
        self.calls: list[UUID] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def get_profile_picture_data_url(self, user_id: UUID) -> str:
        self.calls.append(user_id)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(0)
            if user_id in self.failing:
                raise ProfilePictureError(f"profile service down for {user_id}")
            return f"data:image/png;base64,{user_id.hex}"
        finally:
            self.in_flight -= 1


@pytest.fixture
def users() -> FakeUserStore:
    return FakeUserStore()


@pytest.fixture
def comment_store(users: FakeUserStore) -> FakeCommentStore:
    return FakeCommentStore(users)


@pytest.fixture
def posts() -> FakePostStore:
    return FakePostStore()


@pytest.fixture
def profile_pictures() -> FakeProfilePictures:
    return FakeProfilePictures()


@pytest.fixture
def events() -> AsyncMock:
    publisher = AsyncMock()
    publisher.publish = AsyncMock(return_value=1)
    return publisher


@pytest.fixture
def tasks() -> AsyncMock:
    enqueuer = AsyncMock()
    enqueuer.enqueue = AsyncMock()
    return enqueuer


@pytest.fixture
def post_commit() -> PostCommitDispatcher:
    return PostCommitDispatcher(max_attempts=2, backoff_seconds=0, inline=True)


@pytest.fixture
def comment_service(
    comment_store: FakeCommentStore,
    users: FakeUserStore,
    posts: FakePostStore,
    profile_pictures: FakeProfilePictures,
    events: AsyncMock,
    tasks: AsyncMock,
    post_commit: PostCommitDispatcher,
) -> CommentService:
    return CommentService(
        comments=comment_store,
        users=users,
        posts=posts,
        profile_pictures=profile_pictures,
        events=events,
        tasks=tasks,
        post_commit=post_commit,
        enrichment_concurrency=2,
        max_text_length=200,
    )


@pytest.fixture
def alice(users: FakeUserStore) -> User:
    return users.add("alice")


@pytest.fixture
def bob(users: FakeUserStore) -> User:
    return users.add("bob")


@pytest.fixture
def caller_for() -> Callable[..., Caller]:
    def _caller(user: User, role: UserRole = UserRole.USER) -> Caller:
        return Caller(id=user.id, role=role, user_name=user.user_name)

    return _caller


@pytest.fixture
def post_entity(posts: FakePostStore) -> EntityRef:
    post = posts.add("first-post")
    return EntityRef(EntityKind.POST, str(post.id))
