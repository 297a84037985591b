"""Event publishing over Redis Pub/Sub."""

from typing import TYPE_CHECKING

import structlog

from src.core.redis import event_channel

from .models import DomainEvent


if TYPE_CHECKING:
    from redis.asyncio import Redis


logger = structlog.get_logger(__name__)


class EventPublisher:
    """Publishes domain events to per-event-type channels.

    Delivery is at-least-once from the consumer's point of view: a publish
    may be retried by the caller after a transient failure.
    """

    def __init__(self, redis: "Redis | None", channel_prefix: str):
        self.redis = redis
        self.channel_prefix = channel_prefix

    async def publish(self, event: DomainEvent) -> int:
        """Publish an event.

        Returns:
            Number of subscribers that received it (0 when Redis is absent)
        """
        channel = event_channel(self.channel_prefix, event.event_name)

        if not self.redis:
            logger.warning(
                "event_dropped_no_redis",
                channel=channel,
                event_id=str(event.event_id),
            )
            return 0

        receivers = await self.redis.publish(channel, event.model_dump_json())
        logger.debug(
            "event_published",
            channel=channel,
            event_id=str(event.event_id),
            receivers=receivers,
        )
        return receivers
