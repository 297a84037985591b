"""Task enqueueing onto a Redis list."""

from typing import TYPE_CHECKING, Any

import structlog

from src.core.context import get_correlation_id
from src.core.exceptions import ServiceError

from .models import TaskDescriptor


if TYPE_CHECKING:
    from redis.asyncio import Redis


logger = structlog.get_logger(__name__)


class TaskQueueUnavailableError(ServiceError):
    """No Redis connection to enqueue on."""

    def __init__(self, message: str = "Task queue unavailable"):
        super().__init__(message, "task_queue_unavailable")


class TaskEnqueuer:
    """Pushes task descriptors for the worker to pick up.

    Producers LPUSH and the worker BRPOPs, so tasks run in FIFO order.
    """

    def __init__(self, redis: "Redis | None", queue_key: str):
        self.redis = redis
        self.queue_key = queue_key

    async def enqueue(self, name: str, payload: dict[str, Any]) -> TaskDescriptor:
        """Queue a task.

        Raises:
            TaskQueueUnavailableError: If Redis is not configured
        """
        descriptor = TaskDescriptor(
            name=name,
            payload=payload,
            correlation_id=get_correlation_id(),
        )
        await self.push(descriptor)
        logger.info("task_enqueued", task_name=name, task_id=descriptor.task_id)
        return descriptor

    async def push(self, descriptor: TaskDescriptor, key: str | None = None) -> None:
        if not self.redis:
            raise TaskQueueUnavailableError
        await self.redis.lpush(key or self.queue_key, descriptor.model_dump_json())
