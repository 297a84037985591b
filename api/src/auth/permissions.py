"""Role-based access control for the community platform.

- ADMIN: can moderate any user's content
- USER: registered member, manages own content
"""

from enum import Enum


class UserRole(str, Enum):
    """Roles carried in the access token."""

    USER = "user"
    ADMIN = "admin"


def is_admin(role: UserRole | str) -> bool:
    """Check if role is ADMIN."""
    if isinstance(role, str):
        return role == UserRole.ADMIN.value
    return role == UserRole.ADMIN
