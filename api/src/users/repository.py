# ruff: noqa: S608 - All CQL queries use keyspace from config, not user input
"""User store backed by Cassandra."""

import asyncio
from collections.abc import Iterable
from typing import TYPE_CHECKING
from uuid import UUID

from src.core.exceptions import NotFoundError

from .models import User


if TYPE_CHECKING:
    from cassandra.cluster import Session


class UserNotFoundError(NotFoundError):
    """User not found."""

    def __init__(self, user_id: UUID):
        super().__init__(f"User {user_id} not found", "user_not_found")
        self.user_id = user_id


class UserRepository:
    """Read access to users owned by the identity service."""

    def __init__(self, session: "Session", keyspace: str):
        self.session = session
        self.keyspace = keyspace
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        self._get_user = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.users WHERE id = ?
        """)

        self._get_user_id_by_name = self.session.prepare(f"""
            SELECT user_id FROM {self.keyspace}.users_by_user_name
            WHERE user_name = ?
        """)

    async def find(self, user_id: UUID) -> User | None:
        result = await self.session.aexecute(self._get_user, [user_id])
        row = result.one()
        return User.from_row(row) if row else None

    async def get(self, user_id: UUID) -> User:
        """Get a user by ID.

        Raises:
            UserNotFoundError: If no such user exists
        """
        user = await self.find(user_id)
        if user is None:
            raise UserNotFoundError(user_id)
        return user

    async def get_many(self, user_ids: Iterable[UUID]) -> dict[UUID, User]:
        """Fetch several users concurrently.

        Missing users are absent from the returned mapping.
        """
        distinct_ids = list(dict.fromkeys(user_ids))
        users = await asyncio.gather(*(self.find(uid) for uid in distinct_ids))
        return {user.id: user for user in users if user is not None}

    async def find_by_user_name(self, user_name: str) -> User | None:
        result = await self.session.aexecute(
            self._get_user_id_by_name, [user_name.lower()]
        )
        row = result.one()
        if row is None:
            return None
        return await self.find(row.user_id)
