"""Profile picture lookup against the user profile service.

Pictures are returned as data URLs so clients can render them without a
second round trip. Callers treat every failure as non-fatal.
"""

import base64
from uuid import UUID

import httpx
import structlog

from src.core.exceptions import ServiceError


logger = structlog.get_logger(__name__)

DEFAULT_IMAGE_MIME = "image/png"


class ProfilePictureError(ServiceError):
    """Profile picture could not be fetched."""

    def __init__(self, message: str):
        super().__init__(message, "profile_picture_unavailable")


def to_data_url(content: bytes, mime_type: str | None) -> str:
    """Encode raw image bytes as a base64 data URL."""
    mime = (mime_type or DEFAULT_IMAGE_MIME).split(";")[0].strip() or DEFAULT_IMAGE_MIME
    encoded = base64.b64encode(content).decode("ascii")
    return f"data:{mime};base64,{encoded}"


class ProfilePictureResolver:
    """Resolves a user's profile picture to a data URL."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 3.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = client

    async def get_profile_picture_data_url(self, user_id: UUID) -> str:
        """Fetch the user's picture.

        Returns:
            Data URL, or an empty string when the user has no picture

        Raises:
            ProfilePictureError: On unexpected status, timeout or transport error
        """
        url = f"{self.base_url}/users/{user_id}/profile-picture"

        try:
            if self._client is not None:
                response = await self._client.get(url, timeout=self.timeout)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.get(url)
        except httpx.TimeoutException as e:
            raise ProfilePictureError(f"Profile service timeout for {user_id}") from e
        except httpx.RequestError as e:
            raise ProfilePictureError(f"Profile service request error: {e}") from e

        if response.status_code == httpx.codes.NOT_FOUND:
            return ""

        if response.status_code != httpx.codes.OK:
            logger.debug(
                "profile_service_unexpected_status",
                user_id=str(user_id),
                status_code=response.status_code,
            )
            raise ProfilePictureError(
                f"Profile service returned {response.status_code} for {user_id}"
            )

        if not response.content:
            return ""

        return to_data_url(response.content, response.headers.get("content-type"))
