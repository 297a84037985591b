"""Read-only user access for comment authors."""

from .models import USERS_TABLES_CQL, User
from .profile_pictures import ProfilePictureError, ProfilePictureResolver
from .repository import UserNotFoundError, UserRepository
from .schemas import UserResponse


__all__ = [
    "USERS_TABLES_CQL",
    "ProfilePictureError",
    "ProfilePictureResolver",
    "User",
    "UserNotFoundError",
    "UserRepository",
    "UserResponse",
]
