"""User entity as seen by the comment system.

Users are owned by the identity service; this module only reads them.
The tables are declared here so a local keyspace can be bootstrapped.
"""

from dataclasses import dataclass
from typing import Any
from uuid import UUID


USER_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.users (
    id UUID PRIMARY KEY,
    user_name TEXT,
    name TEXT,
    surname TEXT,
    email TEXT,
    is_active BOOLEAN
)
"""

# Username lookup for the author filter on reply listings
USERS_BY_USER_NAME_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.users_by_user_name (
    user_name TEXT PRIMARY KEY,
    user_id UUID
)
"""

USERS_TABLES_CQL = [
    USER_TABLE_CQL,
    USERS_BY_USER_NAME_TABLE_CQL,
]


@dataclass
class User:
    """Read-only user projection."""

    id: UUID
    user_name: str
    name: str | None = None
    surname: str | None = None
    email: str | None = None
    is_active: bool = True

    @classmethod
    def from_row(cls, row: Any) -> "User":
        """Create User from Cassandra row."""
        return cls(
            id=row.id,
            user_name=row.user_name,
            name=row.name,
            surname=row.surname,
            email=row.email,
            is_active=row.is_active if row.is_active is not None else True,
        )
