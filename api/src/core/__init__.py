# Core infrastructure
from src.core.context import (
    RequestContext,
    clear_context,
    get_context,
    get_correlation_id,
    get_request_id,
    get_user_id,
    set_correlation_id,
    set_request_id,
    set_user_id,
)
from src.core.exceptions import (
    ConcurrencyConflictError,
    NotFoundError,
    PermissionDeniedError,
    ServiceError,
    ValidationFailedError,
)
from src.core.logging import configure_structlog, get_logger
from src.core.middleware import RequestContextMiddleware


__all__ = [
    "ConcurrencyConflictError",
    "NotFoundError",
    "PermissionDeniedError",
    "RequestContext",
    "RequestContextMiddleware",
    "ServiceError",
    "ValidationFailedError",
    "clear_context",
    "configure_structlog",
    "get_context",
    "get_correlation_id",
    "get_logger",
    "get_request_id",
    "get_user_id",
    "set_correlation_id",
    "set_request_id",
    "set_user_id",
]
