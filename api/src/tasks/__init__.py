"""Background task queue over Redis lists."""

from .models import TaskDescriptor, TaskName
from .queue import TaskEnqueuer, TaskQueueUnavailableError
from .worker import TaskWorker


__all__ = [
    "TaskDescriptor",
    "TaskEnqueuer",
    "TaskName",
    "TaskQueueUnavailableError",
    "TaskWorker",
]
