"""Community post entity, read by the comments feed."""

from dataclasses import dataclass
from datetime import datetime
from typing import Any
from uuid import UUID


# author_user_name is denormalized: posts are authored by communities and the
# feed shows that name next to each comment.
POST_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.posts (
    id UUID PRIMARY KEY,
    slug TEXT,
    title TEXT,
    author_id UUID,
    author_user_name TEXT,
    creation_time TIMESTAMP
)
"""

POSTS_TABLES_CQL = [POST_TABLE_CQL]


@dataclass
class Post:
    """Read-only post projection."""

    id: UUID
    slug: str
    title: str
    creation_time: datetime
    author_id: UUID | None = None
    author_user_name: str | None = None

    @classmethod
    def from_row(cls, row: Any) -> "Post":
        """Create Post from Cassandra row."""
        return cls(
            id=row.id,
            slug=row.slug,
            title=row.title,
            creation_time=row.creation_time,
            author_id=row.author_id,
            author_user_name=row.author_user_name,
        )
