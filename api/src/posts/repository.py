# ruff: noqa: S608 - All CQL queries use keyspace from config, not user input
"""Post lookup backed by Cassandra."""

from typing import TYPE_CHECKING
from uuid import UUID

from src.core.exceptions import NotFoundError

from .models import Post


if TYPE_CHECKING:
    from cassandra.cluster import Session


class PostNotFoundError(NotFoundError):
    """Post not found."""

    def __init__(self, post_id: UUID):
        super().__init__(f"Post {post_id} not found", "post_not_found")
        self.post_id = post_id


class PostRepository:
    """Read access to community posts."""

    def __init__(self, session: "Session", keyspace: str):
        self.session = session
        self.keyspace = keyspace
        self._get_post = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.posts WHERE id = ?
        """)

    async def get_by_id(self, post_id: UUID) -> Post:
        """Get a post by ID.

        Raises:
            PostNotFoundError: If no such post exists
        """
        result = await self.session.aexecute(self._get_post, [post_id])
        row = result.one()
        if row is None:
            raise PostNotFoundError(post_id)
        return Post.from_row(row)
