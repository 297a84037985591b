"""Base service exceptions shared by all modules.

Services raise these; routers translate them into HTTP responses.
"""

from fastapi import status


class ServiceError(Exception):
    """Base service error."""

    def __init__(self, message: str, code: str = "service_error"):
        self.message = message
        self.code = code
        super().__init__(message)


class NotFoundError(ServiceError):
    """Referenced entity does not exist."""

    def __init__(self, message: str = "Resource not found", code: str = "not_found"):
        super().__init__(message, code)


class PermissionDeniedError(ServiceError):
    """Caller lacks permission for the operation."""

    def __init__(self, message: str = "Permission denied"):
        super().__init__(message, "permission_denied")


class ConcurrencyConflictError(ServiceError):
    """Optimistic concurrency stamp did not match the stored value."""

    def __init__(
        self,
        message: str = "The resource was modified by another request",
    ):
        super().__init__(message, "concurrency_conflict")


class ValidationFailedError(ServiceError):
    """Input is well-formed but violates a domain rule."""

    def __init__(self, message: str, code: str = "validation_failed"):
        super().__init__(message, code)


# Most specific first; anything unmatched is a server error
STATUS_BY_ERROR: list[tuple[type[ServiceError], int]] = [
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (PermissionDeniedError, status.HTTP_403_FORBIDDEN),
    (ConcurrencyConflictError, status.HTTP_409_CONFLICT),
    (ValidationFailedError, status.HTTP_400_BAD_REQUEST),
]


def http_status_for(error: ServiceError) -> int:
    """HTTP status code for a service error."""
    for error_type, status_code in STATUS_BY_ERROR:
        if isinstance(error, error_type):
            return status_code
    return status.HTTP_500_INTERNAL_SERVER_ERROR
