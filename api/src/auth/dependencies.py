"""FastAPI dependencies for authentication.

Provides dependency injection for:
- Current caller extraction from JWT
- Optional caller for anonymous endpoints
"""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from jose import JWTError
from pydantic import ValidationError

from src.auth.schemas import Caller
from src.auth.security import decode_access_token
from src.core.context import set_user_id


def get_token_from_header(request: Request) -> str | None:
    """Extract Bearer token from Authorization header."""
    auth_header = request.headers.get("Authorization")
    if not auth_header:
        return None

    expected_parts = 2
    parts = auth_header.split()
    if len(parts) != expected_parts or parts[0].lower() != "bearer":
        return None

    return parts[1]


def caller_from_token(token: str) -> Caller:
    """Build the caller from a token.

    Raises:
        JWTError: If the token is invalid or its claims are malformed
    """
    payload = decode_access_token(token)
    try:
        return Caller(
            id=payload["sub"],
            role=payload.get("role", "user"),
            user_name=payload.get("user_name"),
        )
    except ValidationError as e:
        msg = "Invalid access token claims"
        raise JWTError(msg) from e


async def get_current_user(
    token: Annotated[str | None, Depends(get_token_from_header)],
) -> Caller:
    """Get current authenticated caller from JWT token.

    Raises:
        HTTPException(401): If token is missing, invalid, or expired
    """
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Access token not provided",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        caller = caller_from_token(token)
    except JWTError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        ) from e

    # Set user_id in context for logging
    set_user_id(caller.id)
    return caller


async def get_current_user_optional(
    token: Annotated[str | None, Depends(get_token_from_header)],
) -> Caller | None:
    """Get current caller if authenticated, None otherwise."""
    if not token:
        return None

    try:
        caller = caller_from_token(token)
    except JWTError:
        return None

    set_user_id(caller.id)
    return caller


CurrentUser = Annotated[Caller, Depends(get_current_user)]

OptionalUser = Annotated[Caller | None, Depends(get_current_user_optional)]
