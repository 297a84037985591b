"""Domain events published to other services."""

from datetime import UTC, datetime
from typing import ClassVar
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class DomainEvent(BaseModel):
    """Base event. Consumers must tolerate duplicate delivery."""

    event_name: ClassVar[str] = "domain_event"

    event_id: UUID = Field(default_factory=uuid4)
    occurred_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class CommentCreatedEvent(DomainEvent):
    """A comment was persisted."""

    event_name: ClassVar[str] = "comment.created"

    id: UUID
