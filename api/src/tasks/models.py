"""Background task descriptors."""

from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, Field


class TaskName:
    """Registered task names."""

    CREATE_CONTENT_CASHTAG_MENTIONS = "mentions.create_content_cashtag_mentions"
    UPDATE_CONTENT_CASHTAG_MENTIONS = "mentions.update_content_cashtag_mentions"


class TaskDescriptor(BaseModel):
    """A unit of background work, serialized as JSON on the queue."""

    task_id: str = Field(default_factory=lambda: uuid4().hex)
    name: str
    payload: dict[str, Any] = Field(default_factory=dict)
    attempts: int = 0
    correlation_id: str | None = None
    enqueued_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    last_error: str | None = None
