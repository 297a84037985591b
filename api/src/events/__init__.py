from .models import CommentCreatedEvent, DomainEvent
from .publisher import EventPublisher


__all__ = ["CommentCreatedEvent", "DomainEvent", "EventPublisher"]
