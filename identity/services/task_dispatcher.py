"""
Fire-and-forget side effects.

Search indexing and welcome emails run after the caller already has its
answer. ``submit`` schedules the coroutine and returns immediately; the
dispatcher keeps a reference to each task until it finishes and logs any
exception it raises, so failures never reach the caller.
"""

import asyncio
import logging
from typing import Coroutine, Any, Optional, Set

logger = logging.getLogger(__name__)


class TaskDispatcher:
    """Schedules background coroutines on the running event loop."""

    def __init__(self):
        self._tasks: Set[asyncio.Task] = set()

    def submit(self, job: Coroutine[Any, Any, Any], name: Optional[str] = None) -> asyncio.Task:
        task = asyncio.create_task(job, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                f"Background task {task.get_name()} failed: {exc}",
                exc_info=(type(exc), exc, exc.__traceback__),
            )

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self, timeout: Optional[float] = None) -> None:
        """Wait for every submitted task (used at shutdown and in tests)."""
        while self._tasks:
            tasks = list(self._tasks)
            done, not_done = await asyncio.wait(tasks, timeout=timeout)
            if not_done:
                logger.warning(f"Cancelling {len(not_done)} background task(s) still running")
                for task in not_done:
                    task.cancel()
                await asyncio.gather(*not_done, return_exceptions=True)
                return
