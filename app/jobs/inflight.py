"""Per-key single-flight registry for asyncio tasks."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Generic, TypeVar

from loguru import logger

T = TypeVar("T")


class SingleFlight(Generic[T]):
    """At most one in-flight task per key.

    The check-and-register in launch() happens without any await in between,
    so concurrent callers on the same event loop always share one task. The
    registry entry is removed when the task finishes, but only if it still
    belongs to that task (forget() may have detached it and a newer task may
    have taken its place).
    """

    def __init__(self, name: str = "single_flight"):
        self.name = name
        self._tasks: dict[str, asyncio.Task[T]] = {}

    def get(self, key: str) -> asyncio.Task[T] | None:
        task = self._tasks.get(key)
        if task is not None and task.done():
            return None
        return task

    def in_flight(self, key: str) -> bool:
        return self.get(key) is not None

    def launch(self, key: str, factory: Callable[[], Awaitable[T]]) -> tuple[asyncio.Task[T], bool]:
        """Return the in-flight task for ``key``, starting one if none is running.

        Returns:
            (task, created) where created is False when an existing task was joined
        """
        existing = self.get(key)
        if existing is not None:
            logger.debug("Joining in-flight task", registry=self.name, key=key)
            return existing, False

        task = asyncio.ensure_future(self._run(key, factory))
        self._tasks[key] = task
        return task, True

    async def do(self, key: str, factory: Callable[[], Awaitable[T]]) -> T:
        task, _ = self.launch(key, factory)
        return await asyncio.shield(task)

    def forget(self, key: str) -> None:
        """Detach the in-flight task for ``key`` without cancelling it."""
        self._tasks.pop(key, None)

    async def _run(self, key: str, factory: Callable[[], Awaitable[T]]) -> T:
        try:
            return await factory()
        finally:
            current = asyncio.current_task()
            if self._tasks.get(key) is current:
                del self._tasks[key]
