"""Author transfer object embedded in comment responses."""

from uuid import UUID

from pydantic import BaseModel

from .models import User


class UserResponse(BaseModel):
    """Display projection of a comment author."""

    id: UUID
    user_name: str
    name: str | None = None
    surname: str | None = None
    profile_image_data_url: str = ""

    @classmethod
    def from_user(cls, user: User, profile_image_data_url: str = "") -> "UserResponse":
        return cls(
            id=user.id,
            user_name=user.user_name,
            name=user.name,
            surname=user.surname,
            profile_image_data_url=profile_image_data_url,
        )
