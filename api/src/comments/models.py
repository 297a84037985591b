"""Database models for threaded comments.

Comments attach to any entity through an ``(entity_type, entity_id)``
reference. Threads are two levels deep: a reply always points at a root
comment.

Tables are denormalized per query path and carry the same columns:
- comments_by_id: source of truth, target of conditional updates
- comments_by_entity: all comments of one entity, oldest first
- comments_by_parent: replies of one root comment, oldest first
- comments_by_kind: root comments on one entity kind, newest first (feed)
"""

from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Any, NamedTuple
from uuid import UUID, uuid4

from src.users.models import User

from .exceptions import InvalidCommentTextError, UnsupportedEntityKindError


DEFAULT_MAX_TEXT_LENGTH = 2000


class EntityKind(str, Enum):
    """Kinds of entity that can own comments."""

    POST = "post"
    COMMUNITY = "community"


@dataclass(frozen=True)
class EntityRef:
    """Reference to the entity that owns a comment."""

    kind: EntityKind
    id: str

    @classmethod
    def parse(cls, kind: str, entity_id: str) -> "EntityRef":
        """Build a reference from raw route or row values.

        Raises:
            UnsupportedEntityKindError: If the kind is unknown, the id is empty,
                or a post id is not a UUID
        """
        try:
            entity_kind = EntityKind(kind.lower())
        except ValueError as e:
            raise UnsupportedEntityKindError(f"Unknown entity type '{kind}'") from e

        entity_id = (entity_id or "").strip()
        if not entity_id:
            raise UnsupportedEntityKindError("Entity id is required")

        ref = cls(kind=entity_kind, id=entity_id)
        if entity_kind is EntityKind.POST:
            # Canonical form, so one post maps to one partition
            return cls(kind=entity_kind, id=str(ref.post_id()))
        return ref

    def post_id(self) -> UUID:
        """Return the referenced post's ID.

        Raises:
            UnsupportedEntityKindError: If this is not a post reference
        """
        if self.kind is not EntityKind.POST:
            raise UnsupportedEntityKindError(
                f"Expected a post reference, got '{self.kind.value}'"
            )
        try:
            return UUID(self.id)
        except ValueError as e:
            raise UnsupportedEntityKindError(f"Invalid post id '{self.id}'") from e


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

_COMMENT_COLUMNS = """
    comment_id UUID,
    entity_type TEXT,
    entity_id TEXT,
    creator_id UUID,
    text TEXT,
    replied_comment_id UUID,
    creation_time TIMESTAMP,
    last_modification_time TIMESTAMP,
    is_deleted BOOLEAN,
    deletion_time TIMESTAMP,
    deleter_id UUID,
    concurrency_stamp TEXT,
"""

COMMENTS_BY_ID_TABLE_CQL = (
    """
CREATE TABLE IF NOT EXISTS {keyspace}.comments_by_id ("""
    + _COMMENT_COLUMNS
    + """
    PRIMARY KEY (comment_id)
)
"""
)

COMMENTS_BY_ENTITY_TABLE_CQL = (
    """
CREATE TABLE IF NOT EXISTS {keyspace}.comments_by_entity ("""
    + _COMMENT_COLUMNS
    + """
    PRIMARY KEY ((entity_type, entity_id), creation_time, comment_id)
) WITH CLUSTERING ORDER BY (creation_time ASC, comment_id ASC)
"""
)

COMMENTS_BY_PARENT_TABLE_CQL = (
    """
CREATE TABLE IF NOT EXISTS {keyspace}.comments_by_parent ("""
    + _COMMENT_COLUMNS
    + """
    PRIMARY KEY ((replied_comment_id), creation_time, comment_id)
) WITH CLUSTERING ORDER BY (creation_time ASC, comment_id ASC)
"""
)

COMMENTS_BY_KIND_TABLE_CQL = (
    """
CREATE TABLE IF NOT EXISTS {keyspace}.comments_by_kind ("""
    + _COMMENT_COLUMNS
    + """
    PRIMARY KEY ((entity_type), creation_time, comment_id)
) WITH CLUSTERING ORDER BY (creation_time DESC, comment_id DESC)
"""
)

COMMENTS_TABLES_CQL = [
    COMMENTS_BY_ID_TABLE_CQL,
    COMMENTS_BY_ENTITY_TABLE_CQL,
    COMMENTS_BY_PARENT_TABLE_CQL,
    COMMENTS_BY_KIND_TABLE_CQL,
]


# ==============================================================================
# Entity Classes
# ==============================================================================


def new_concurrency_stamp() -> str:
    return uuid4().hex


def normalize_text(text: str, max_length: int = DEFAULT_MAX_TEXT_LENGTH) -> str:
    """Trim and validate comment text.

    Raises:
        InvalidCommentTextError: If the text is empty or too long
    """
    normalized = (text or "").strip()
    if not normalized:
        raise InvalidCommentTextError("Comment text must not be empty")
    if len(normalized) > max_length:
        raise InvalidCommentTextError(
            f"Comment text exceeds {max_length} characters"
        )
    return normalized


@dataclass
class Comment:
    """Comment entity.

    ``concurrency_stamp`` is the stamp the next update expects to find in
    the store.
    """

    id: UUID
    entity: EntityRef
    creator_id: UUID
    text: str
    replied_comment_id: UUID | None
    creation_time: datetime
    last_modification_time: datetime | None
    concurrency_stamp: str
    is_deleted: bool = False
    deletion_time: datetime | None = None
    deleter_id: UUID | None = None

    @classmethod
    def from_row(cls, row: Any) -> "Comment":
        """Create Comment from Cassandra row."""
        return cls(
            id=row.comment_id,
            entity=EntityRef(EntityKind(row.entity_type), row.entity_id),
            creator_id=row.creator_id,
            text=row.text,
            replied_comment_id=row.replied_comment_id,
            creation_time=row.creation_time,
            last_modification_time=row.last_modification_time,
            concurrency_stamp=row.concurrency_stamp or "",
            is_deleted=row.is_deleted or False,
            deletion_time=row.deletion_time,
            deleter_id=row.deleter_id,
        )

    @property
    def is_reply(self) -> bool:
        return self.replied_comment_id is not None

    def set_text(self, text: str, max_length: int = DEFAULT_MAX_TEXT_LENGTH) -> None:
        self.text = normalize_text(text, max_length)
        self.last_modification_time = datetime.now(UTC)

    def set_concurrency_stamp_if_not_none(self, stamp: str | None) -> None:
        """Expect the caller's stamp instead of the one loaded from the store."""
        if stamp is not None:
            self.concurrency_stamp = stamp

    def mark_deleted(self, deleter_id: UUID) -> None:
        self.is_deleted = True
        self.deletion_time = datetime.now(UTC)
        self.deleter_id = deleter_id


class CommentWithAuthor(NamedTuple):
    """Comment joined with its author, as returned by store queries."""

    comment: Comment
    author: User


# ==============================================================================
# Factory Functions
# ==============================================================================


def create_comment(
    creator_id: UUID,
    entity: EntityRef,
    text: str,
    replied_comment_id: UUID | None = None,
    max_length: int = DEFAULT_MAX_TEXT_LENGTH,
) -> Comment:
    """Create a new comment with validated text and a fresh stamp."""
    return Comment(
        id=uuid4(),
        entity=entity,
        creator_id=creator_id,
        text=normalize_text(text, max_length),
        replied_comment_id=replied_comment_id,
        creation_time=datetime.now(UTC),
        last_modification_time=None,
        concurrency_stamp=new_concurrency_stamp(),
    )
