"""Authenticated caller identity."""

from uuid import UUID

from pydantic import BaseModel, ConfigDict

from .permissions import UserRole, is_admin


class Caller(BaseModel):
    """Identity extracted from a validated access token."""

    model_config = ConfigDict(frozen=True)

    id: UUID
    role: UserRole = UserRole.USER
    user_name: str | None = None

    @property
    def is_admin(self) -> bool:
        return is_admin(self.role)
