"""Side effects that run after a comment write has been persisted.

A hook failure never fails the request that registered it: each hook is
retried with exponential backoff, then logged and abandoned.
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

import structlog


logger = structlog.get_logger(__name__)

PostCommitHook = Callable[[], Awaitable[Any]]


class PostCommitDispatcher:
    """Runs post-commit hooks with retry.

    In background mode hooks run as tasks tracked until :meth:`drain`;
    in inline mode :meth:`dispatch` awaits them.
    """

    def __init__(
        self,
        max_attempts: int = 3,
        backoff_seconds: float = 0.1,
        inline: bool = False,
    ):
        self.max_attempts = max(1, max_attempts)
        self.backoff_seconds = backoff_seconds
        self.inline = inline
        self._pending: set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def dispatch(self, name: str, hook: PostCommitHook) -> None:
        if self.inline:
            await self._run(name, hook)
            return

        task = asyncio.create_task(self._run(name, hook), name=f"post_commit:{name}")
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _run(self, name: str, hook: PostCommitHook) -> bool:
        delay = self.backoff_seconds
        for attempt in range(1, self.max_attempts + 1):
            try:
                await hook()
            except Exception as e:
                if attempt == self.max_attempts:
                    logger.error(
                        "post_commit_hook_failed",
                        hook=name,
                        attempts=attempt,
                        error=str(e),
                        error_type=type(e).__name__,
                    )
                    return False
                logger.warning(
                    "post_commit_hook_retry",
                    hook=name,
                    attempt=attempt,
                    error=str(e),
                )
                await asyncio.sleep(delay)
                delay *= 2
            else:
                logger.debug("post_commit_hook_completed", hook=name, attempts=attempt)
                return True
        return False

    async def drain(self, timeout: float | None = None) -> None:
        """Wait for background hooks, cancelling any left after ``timeout``."""
        if not self._pending:
            return

        pending = list(self._pending)
        _, not_done = await asyncio.wait(pending, timeout=timeout)
        for task in not_done:
            task.cancel()
        if not_done:
            logger.warning("post_commit_hooks_cancelled", count=len(not_done))
