"""Access token validation and caller identity."""

from .dependencies import CurrentUser, OptionalUser
from .permissions import UserRole, is_admin
from .schemas import Caller


__all__ = ["Caller", "CurrentUser", "OptionalUser", "UserRole", "is_admin"]
