"""Delayed task scheduling scoped to a session's lifetime."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine
from typing import Any

logger = logging.getLogger(__name__)


class TaskScope:
    """Owns every delayed task started for one session.

    Tasks are started with :meth:`schedule` and tracked until they finish.
    :meth:`cancel` cancels everything still pending or running at once, so
    teardown never has to track individual handles. Tasks can carry a group
    label so a subset (e.g. roster-scan lookups) can be cancelled alone.

    Example:
        ```python
        scope = TaskScope("Alice")
        scope.schedule(0.5, lambda: pipeline.statcheck("Bob"), group="roster")
        scope.cancel_group("roster")
        scope.cancel()
        ```
    """

    def __init__(self, name: str = "session") -> None:
        self._name = name
        self._tasks: dict[asyncio.Task[None], str | None] = {}
        self._fired: set[asyncio.Task[Any]] = set()
        self._closed = False

    @property
    def closed(self) -> bool:
        """Whether the scope has been cancelled."""
        return self._closed

    @property
    def pending(self) -> int:
        """Number of tasks not yet finished."""
        return len(self._tasks)

    def schedule(
        self,
        delay: float,
        factory: Callable[[], Coroutine[Any, Any, None]],
        *,
        group: str | None = None,
    ) -> asyncio.Task[None] | None:
        """Run ``factory()`` after ``delay`` seconds.

        Args:
            delay: Seconds to wait before starting the coroutine
            factory: Zero-argument callable returning the coroutine to run
            group: Optional label for :meth:`cancel_group`

        Returns:
            The created task, or None if the scope is already closed
        """
        if self._closed:
            logger.debug(f"Scope '{self._name}' closed, not scheduling task")
            return None

        task = asyncio.get_running_loop().create_task(self._run_later(delay, factory))
        self._tasks[task] = group
        task.add_done_callback(self._on_done)
        return task

    async def _run_later(
        self, delay: float, factory: Callable[[], Coroutine[Any, Any, None]]
    ) -> None:
        if delay > 0:
            await asyncio.sleep(delay)
        current = asyncio.current_task()
        if current is not None:
            self._fired.add(current)
        try:
            await factory()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Scheduled task in scope '{self._name}' failed: {e}", exc_info=True)

    def _on_done(self, task: asyncio.Task[None]) -> None:
        self._tasks.pop(task, None)
        self._fired.discard(task)

    def cancel_group(self, group: str) -> int:
        """Cancel tasks carrying ``group`` that have not started running yet.

        Returns:
            Number of tasks cancelled
        """
        doomed = [
            task
            for task, label in self._tasks.items()
            if label == group and task not in self._fired
        ]
        for task in doomed:
            task.cancel()
        if doomed:
            logger.debug(f"Cancelled {len(doomed)} '{group}' task(s) in scope '{self._name}'")
        return len(doomed)

    def cancel(self) -> None:
        """Cancel all tasks and refuse new ones. Safe to call repeatedly."""
        if self._closed:
            return
        self._closed = True
        for task in list(self._tasks):
            task.cancel()
        logger.debug(f"Scope '{self._name}' cancelled ({len(self._tasks)} task(s))")
