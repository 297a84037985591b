# ruff: noqa: S608 - All CQL queries use keyspace from config, not user input
"""Comment store backed by Cassandra.

Writes go to every denormalized table that holds the comment;
``comments_by_id`` is the source of truth and the target of conditional
(LWT) updates. Only root comments are written to ``comments_by_kind``.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any
from uuid import UUID

import structlog

from src.core.exceptions import ConcurrencyConflictError

from .exceptions import CommentNotFoundError
from .models import (
    Comment,
    CommentWithAuthor,
    EntityKind,
    EntityRef,
    new_concurrency_stamp,
)
from .schemas import CommentsFeedFilter


if TYPE_CHECKING:
    from cassandra.cluster import Session

    from src.users.repository import UserRepository


logger = structlog.get_logger(__name__)

# Bounds for creation_time range queries when the caller gives none
MIN_CREATION_TIME = datetime(1970, 1, 1, tzinfo=UTC)
MAX_CREATION_TIME = datetime(9999, 12, 31, tzinfo=UTC)

_COLUMNS = (
    "comment_id, entity_type, entity_id, creator_id, text, replied_comment_id, "
    "creation_time, last_modification_time, is_deleted, deletion_time, "
    "deleter_id, concurrency_stamp"
)
_PLACEHOLDERS = ", ".join("?" * 12)

# Rows read per feed query; the feed pages by (creation_time, comment_id)
FEED_BATCH_SIZE = 100


def _matches_text(comment: Comment, text_filter: str | None) -> bool:
    if not text_filter:
        return True
    return text_filter.lower() in comment.text.lower()


class CommentRepository:
    """Comment persistence and queries joined with authors."""

    def __init__(
        self,
        session: "Session",
        keyspace: str,
        user_repository: "UserRepository",
        feed_batch_size: int = FEED_BATCH_SIZE,
    ):
        self.session = session
        self.keyspace = keyspace
        self.users = user_repository
        self.feed_batch_size = max(1, feed_batch_size)
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements for efficient queries."""
        self._insert = {
            table: self.session.prepare(f"""
                INSERT INTO {self.keyspace}.{table} ({_COLUMNS})
                VALUES ({_PLACEHOLDERS})
            """)
            for table in (
                "comments_by_id",
                "comments_by_entity",
                "comments_by_parent",
                "comments_by_kind",
            )
        }

        self._get_comment = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.comments_by_id
            WHERE comment_id = ?
        """)

        self._get_by_entity = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.comments_by_entity
            WHERE entity_type = ? AND entity_id = ?
        """)

        self._get_replies = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.comments_by_parent
            WHERE replied_comment_id = ?
            AND creation_time >= ? AND creation_time <= ?
        """)

        self._get_by_kind = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.comments_by_kind
            WHERE entity_type = ?
            LIMIT ?
        """)

        self._get_by_kind_before = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.comments_by_kind
            WHERE entity_type = ? AND (creation_time, comment_id) < (?, ?)
            LIMIT ?
        """)

        # Conditional update: applies only if the stamp still matches
        self._update_by_id = self.session.prepare(f"""
            UPDATE {self.keyspace}.comments_by_id
            SET text = ?, last_modification_time = ?, concurrency_stamp = ?
            WHERE comment_id = ?
            IF concurrency_stamp = ?
        """)

        self._update_by_entity = self.session.prepare(f"""
            UPDATE {self.keyspace}.comments_by_entity
            SET text = ?, last_modification_time = ?, concurrency_stamp = ?
            WHERE entity_type = ? AND entity_id = ? AND creation_time = ? AND comment_id = ?
        """)

        self._update_by_parent = self.session.prepare(f"""
            UPDATE {self.keyspace}.comments_by_parent
            SET text = ?, last_modification_time = ?, concurrency_stamp = ?
            WHERE replied_comment_id = ? AND creation_time = ? AND comment_id = ?
        """)

        self._update_by_kind = self.session.prepare(f"""
            UPDATE {self.keyspace}.comments_by_kind
            SET text = ?, last_modification_time = ?, concurrency_stamp = ?
            WHERE entity_type = ? AND creation_time = ? AND comment_id = ?
        """)

        self._delete_by_id = self.session.prepare(f"""
            UPDATE {self.keyspace}.comments_by_id
            SET is_deleted = true, deletion_time = ?, deleter_id = ?
            WHERE comment_id = ?
        """)

        self._delete_by_entity = self.session.prepare(f"""
            UPDATE {self.keyspace}.comments_by_entity
            SET is_deleted = true, deletion_time = ?, deleter_id = ?
            WHERE entity_type = ? AND entity_id = ? AND creation_time = ? AND comment_id = ?
        """)

        self._delete_by_parent = self.session.prepare(f"""
            UPDATE {self.keyspace}.comments_by_parent
            SET is_deleted = true, deletion_time = ?, deleter_id = ?
            WHERE replied_comment_id = ? AND creation_time = ? AND comment_id = ?
        """)

        self._delete_by_kind = self.session.prepare(f"""
            UPDATE {self.keyspace}.comments_by_kind
            SET is_deleted = true, deletion_time = ?, deleter_id = ?
            WHERE entity_type = ? AND creation_time = ? AND comment_id = ?
        """)

    # ==========================================================================
    # Single comment
    # ==========================================================================

    async def get(self, comment_id: UUID) -> Comment:
        """Get a live comment by ID.

        Raises:
            CommentNotFoundError: If missing or soft-deleted
        """
        result = await self.session.aexecute(self._get_comment, [comment_id])
        row = result.one()
        if row is None or row.is_deleted:
            raise CommentNotFoundError(comment_id)
        return Comment.from_row(row)

    async def insert(self, comment: Comment) -> Comment:
        values = [
            comment.id,
            comment.entity.kind.value,
            comment.entity.id,
            comment.creator_id,
            comment.text,
            comment.replied_comment_id,
            comment.creation_time,
            comment.last_modification_time,
            comment.is_deleted,
            comment.deletion_time,
            comment.deleter_id,
            comment.concurrency_stamp,
        ]

        await self.session.aexecute(self._insert["comments_by_id"], values)
        await self.session.aexecute(self._insert["comments_by_entity"], values)
        if comment.is_reply:
            await self.session.aexecute(self._insert["comments_by_parent"], values)
        else:
            await self.session.aexecute(self._insert["comments_by_kind"], values)

        logger.info(
            "comment_inserted",
            comment_id=str(comment.id),
            entity_type=comment.entity.kind.value,
            entity_id=comment.entity.id,
            is_reply=comment.is_reply,
        )
        return comment

    async def update(self, comment: Comment) -> Comment:
        """Persist text changes if the stored stamp equals ``comment.concurrency_stamp``.

        A new stamp is written and set on the comment.

        Raises:
            ConcurrencyConflictError: If the stored stamp differs
        """
        expected_stamp = comment.concurrency_stamp
        new_stamp = new_concurrency_stamp()
        modified = comment.last_modification_time or datetime.now(UTC)

        result = await self.session.aexecute(
            self._update_by_id,
            [comment.text, modified, new_stamp, comment.id, expected_stamp],
        )
        if not result.was_applied:
            logger.info(
                "comment_update_conflict",
                comment_id=str(comment.id),
                expected_stamp=expected_stamp,
            )
            raise ConcurrencyConflictError

        changes = [comment.text, modified, new_stamp]
        await self.session.aexecute(
            self._update_by_entity,
            [
                *changes,
                comment.entity.kind.value,
                comment.entity.id,
                comment.creation_time,
                comment.id,
            ],
        )
        if comment.is_reply:
            await self.session.aexecute(
                self._update_by_parent,
                [*changes, comment.replied_comment_id, comment.creation_time, comment.id],
            )
        else:
            await self.session.aexecute(
                self._update_by_kind,
                [*changes, comment.entity.kind.value, comment.creation_time, comment.id],
            )

        comment.concurrency_stamp = new_stamp
        comment.last_modification_time = modified
        logger.info("comment_updated", comment_id=str(comment.id))
        return comment

    async def delete(self, comment: Comment, deleter_id: UUID) -> None:
        """Soft-delete a comment in every table."""
        comment.mark_deleted(deleter_id)
        marker = [comment.deletion_time, deleter_id]

        await self.session.aexecute(self._delete_by_id, [*marker, comment.id])
        await self.session.aexecute(
            self._delete_by_entity,
            [
                *marker,
                comment.entity.kind.value,
                comment.entity.id,
                comment.creation_time,
                comment.id,
            ],
        )
        if comment.is_reply:
            await self.session.aexecute(
                self._delete_by_parent,
                [*marker, comment.replied_comment_id, comment.creation_time, comment.id],
            )
        else:
            await self.session.aexecute(
                self._delete_by_kind,
                [*marker, comment.entity.kind.value, comment.creation_time, comment.id],
            )

        logger.info(
            "comment_deleted",
            comment_id=str(comment.id),
            deleter_id=str(deleter_id),
        )

    # ==========================================================================
    # Queries
    # ==========================================================================

    async def list_with_authors(self, entity: EntityRef) -> list[CommentWithAuthor]:
        """All live comments of an entity, oldest first."""
        result = await self.session.aexecute(
            self._get_by_entity, [entity.kind.value, entity.id]
        )
        return await self._with_authors(self._live(result))

    async def list(
        self,
        text_filter: str | None = None,
        entity_type: EntityKind | None = None,
        parent_id: UUID | None = None,
        author_username: str | None = None,
        creation_start: datetime | None = None,
        creation_end: datetime | None = None,
    ) -> list[CommentWithAuthor]:
        """Replies of ``parent_id`` matching the filters, oldest first.

        An unknown ``author_username`` matches nothing.
        """
        author_id = None
        if author_username:
            author = await self.users.find_by_user_name(author_username)
            if author is None:
                return []
            author_id = author.id

        result = await self.session.aexecute(
            self._get_replies,
            [
                parent_id,
                creation_start or MIN_CREATION_TIME,
                creation_end or MAX_CREATION_TIME,
            ],
        )

        comments = [
            comment
            for comment in self._live(result)
            if (entity_type is None or comment.entity.kind is entity_type)
            and (author_id is None or comment.creator_id == author_id)
            and _matches_text(comment, text_filter)
        ]
        return await self._with_authors(comments)

    async def list_for_feed(
        self, feed_filter: CommentsFeedFilter
    ) -> list[CommentWithAuthor]:
        """Latest root comments on posts, paged, each followed by its replies.

        Filters apply to root comments; replies are returned unfiltered.
        """
        author_id = None
        if feed_filter.author_username:
            author = await self.users.find_by_user_name(feed_filter.author_username)
            if author is None:
                return []
            author_id = author.id

        roots: list[Comment] = []
        skipped = 0
        cursor: Any = None
        while len(roots) < feed_filter.max_result_count:
            result = await self._feed_batch(cursor)

            consumed = 0
            for row in result:
                consumed += 1
                cursor = row
                if row.is_deleted:
                    continue
                comment = Comment.from_row(row)
                if comment.is_reply:
                    continue
                if author_id is not None and comment.creator_id != author_id:
                    continue
                if not _matches_text(comment, feed_filter.filter):
                    continue
                if skipped < feed_filter.skip_count:
                    skipped += 1
                    continue
                roots.append(comment)
                if len(roots) >= feed_filter.max_result_count:
                    break

            if consumed < self.feed_batch_size:
                break

        comments: list[Comment] = []
        for root in roots:
            comments.append(root)
            replies = await self.session.aexecute(
                self._get_replies, [root.id, MIN_CREATION_TIME, MAX_CREATION_TIME]
            )
            comments.extend(self._live(replies))

        return await self._with_authors(comments)

    async def _feed_batch(self, after: Any) -> Any:
        """Next ``feed_batch_size`` post feed rows older than the ``after`` row."""
        if after is None:
            return await self.session.aexecute(
                self._get_by_kind, [EntityKind.POST.value, self.feed_batch_size]
            )
        return await self.session.aexecute(
            self._get_by_kind_before,
            [
                EntityKind.POST.value,
                after.creation_time,
                after.comment_id,
                self.feed_batch_size,
            ],
        )

    @staticmethod
    def _live(rows: Iterable[Any]) -> list[Comment]:
        return [Comment.from_row(row) for row in rows if not row.is_deleted]

    async def _with_authors(self, comments: list[Comment]) -> list[CommentWithAuthor]:
        authors = await self.users.get_many(c.creator_id for c in comments)

        joined = []
        for comment in comments:
            author = authors.get(comment.creator_id)
            if author is None:
                logger.warning(
                    "comment_author_missing",
                    comment_id=str(comment.id),
                    creator_id=str(comment.creator_id),
                )
                continue
            joined.append(CommentWithAuthor(comment=comment, author=author))
        return joined
