"""
Fire-and-forget background work.

Some side effects (sending a verification email) must not hold up or fail
the request that triggers them. FireAndForget runs them as tasks on the
running loop: the caller returns immediately, failures are logged and never
propagated, and the tasks are kept referenced until they finish so the
loop cannot garbage-collect them mid-flight.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Coroutine

logger = logging.getLogger(__name__)


class FireAndForget:
    """Tracks best-effort background tasks."""

    def __init__(self):
        self._tasks: set[asyncio.Task] = set()

    def spawn(self, coro: Coroutine[Any, Any, Any], description: str) -> asyncio.Task:
        """
        Schedule a coroutine without waiting for it.

        Args:
            coro: The work to run
            description: Short label used when logging a failure

        Returns:
            The scheduled task (callers normally ignore it)
        """
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(lambda t: self._finished(t, description))
        return task

    def _finished(self, task: asyncio.Task, description: str) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.info(f"Background task cancelled: {description}")
            return
        exc = task.exception()
        if exc is not None:
            logger.warning(f"Background task failed: {description}: {exc!r}")

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for every outstanding task (shutdown and tests)."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
