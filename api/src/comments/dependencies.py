"""FastAPI dependencies for comments.

Provides dependency injection for:
- Comment service
- Service error translation
"""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from src.core.exceptions import ServiceError, http_status_for

from .models import EntityRef
from .service import CommentService


async def get_comment_service(request: Request) -> CommentService:
    """Get comment service from app state."""
    app_state = request.app.state
    if not hasattr(app_state, "comment_service") or not app_state.comment_service:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Comment service not available",
        )
    return app_state.comment_service


CommentServiceDep = Annotated[CommentService, Depends(get_comment_service)]


def handle_comment_error(error: ServiceError) -> HTTPException:
    """Convert service errors to HTTP exceptions."""
    return HTTPException(
        status_code=http_status_for(error),
        detail=error.message,
    )


def parse_entity(entity_type: str, entity_id: str) -> EntityRef:
    """Build the entity reference from path parameters.

    Raises:
        HTTPException(400): If the entity type is not supported
    """
    try:
        return EntityRef.parse(entity_type, entity_id)
    except ServiceError as e:
        raise handle_comment_error(e) from e


EntityDep = Annotated[EntityRef, Depends(parse_entity)]
