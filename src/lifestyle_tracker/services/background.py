"""Detached background work with logged failures."""

import asyncio
import logging
from collections.abc import Coroutine
from dataclasses import dataclass, field
from typing import Any

_logger = logging.getLogger(__name__)


@dataclass
class BackgroundTasks:
    """Runs fire-and-forget coroutines and keeps them alive until done.

    Failures never reach the code that scheduled the work; they are logged
    with the task label instead.
    """

    _tasks: set[asyncio.Task[Any]] = field(default_factory=set)

    def spawn(self, coro: Coroutine[Any, Any, Any], *, label: str) -> asyncio.Task[Any]:
        """Schedule ``coro`` on the running loop without awaiting it."""
        task = asyncio.create_task(coro, name=label)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for every scheduled task, including ones spawned meanwhile."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _on_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            _logger.warning(
                "Background task %s failed: %s",
                task.get_name(),
                exc,
                exc_info=exc,
            )
