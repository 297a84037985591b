"""Background task worker.

Consumes descriptors from the Redis queue and runs the registered handler.
Failed tasks are re-queued until ``max_attempts``, then moved to the
dead-letter list together with the last error.
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

import structlog
from pydantic import ValidationError

from src.core.context import RequestContext
from src.core.redis import dead_letter_key

from .models import TaskDescriptor
from .queue import TaskEnqueuer


if TYPE_CHECKING:
    from redis.asyncio import Redis


logger = structlog.get_logger(__name__)

TaskHandler = Callable[..., Awaitable[Any]]


class TaskWorker:
    """Runs queued tasks inside the API process."""

    def __init__(
        self,
        redis: "Redis",
        queue_key: str,
        max_attempts: int = 5,
        poll_timeout: int = 5,
    ):
        self.redis = redis
        self.queue_key = queue_key
        self.max_attempts = max_attempts
        self.poll_timeout = poll_timeout
        self._handlers: dict[str, TaskHandler] = {}
        self._queue = TaskEnqueuer(redis, queue_key)
        self._running = False
        self._worker_task: asyncio.Task | None = None

    def register(self, name: str, handler: TaskHandler) -> None:
        self._handlers[name] = handler

    @property
    def registered(self) -> list[str]:
        return sorted(self._handlers)

    async def start(self) -> None:
        """Start the polling loop."""
        if self._running:
            logger.warning("task_worker_already_running")
            return

        self._running = True
        self._worker_task = asyncio.create_task(self._run(), name="task_worker")
        logger.info("task_worker_started", queue=self.queue_key, tasks=self.registered)

    async def stop(self) -> None:
        """Stop polling; an in-flight task is allowed to finish."""
        if not self._running:
            return

        self._running = False
        if self._worker_task:
            try:
                await asyncio.wait_for(self._worker_task, timeout=self.poll_timeout + 1)
            except TimeoutError:
                logger.warning("task_worker_stop_timeout")
                self._worker_task.cancel()
            except asyncio.CancelledError:
                pass

        logger.info("task_worker_stopped")

    async def _run(self) -> None:
        while self._running:
            try:
                item = await self.redis.brpop([self.queue_key], timeout=self.poll_timeout)
                if item is None:
                    continue
                _, raw = item
                await self.process(raw)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("task_worker_error")
                await asyncio.sleep(1.0)

    async def process(self, raw: str | bytes) -> bool:
        """Handle one serialized descriptor.

        Returns:
            True if the handler completed, False otherwise
        """
        try:
            descriptor = TaskDescriptor.model_validate_json(raw)
        except ValidationError as e:
            logger.error("task_descriptor_invalid", error=str(e))
            return False

        handler = self._handlers.get(descriptor.name)
        if handler is None:
            descriptor.last_error = "no handler registered"
            await self._dead_letter(descriptor)
            return False

        descriptor.attempts += 1
        with RequestContext(correlation_id=descriptor.correlation_id or descriptor.task_id):
            try:
                await handler(**descriptor.payload)
            except Exception as e:
                descriptor.last_error = f"{type(e).__name__}: {e}"
                logger.warning(
                    "task_failed",
                    task_name=descriptor.name,
                    task_id=descriptor.task_id,
                    attempts=descriptor.attempts,
                    error=descriptor.last_error,
                )
                if descriptor.attempts >= self.max_attempts:
                    await self._dead_letter(descriptor)
                else:
                    await self._queue.push(descriptor)
                return False

            logger.info(
                "task_completed",
                task_name=descriptor.name,
                task_id=descriptor.task_id,
                attempts=descriptor.attempts,
            )
        return True

    async def _dead_letter(self, descriptor: TaskDescriptor) -> None:
        await self._queue.push(descriptor, key=dead_letter_key(self.queue_key))
        logger.error(
            "task_dead_lettered",
            task_name=descriptor.name,
            task_id=descriptor.task_id,
            attempts=descriptor.attempts,
            error=descriptor.last_error,
        )
