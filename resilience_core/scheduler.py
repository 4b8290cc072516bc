"""Cooperative asyncio scheduling for periodic and fire-and-forget work."""
from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Coroutine, Optional, Set

logger = logging.getLogger(__name__)


class PeriodicTask:
    """Runs ``fn`` every ``interval`` seconds until cancelled.

    ``fn`` may be a plain function or a coroutine function. Exceptions are
    logged and the loop keeps ticking.
    """

    def __init__(self, name: str, interval: float, fn: Callable[[], Any]) -> None:
        self.name = name
        self.interval = interval
        self._fn = fn
        self._task: Optional[asyncio.Task] = None
        self.runs = 0

    def start(self) -> "PeriodicTask":
        if self._task is None or self._task.done():
            self._task = asyncio.get_running_loop().create_task(self._run(), name=self.name)
        return self

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            await self.run_once()

    async def run_once(self) -> None:
        try:
            result = self._fn()
            if inspect.isawaitable(result):
                await result
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Periodic task {self.name} failed: {e}")
        self.runs += 1

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def cancel(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def wait_cancelled(self) -> None:
        if self._task is None:
            return
        try:
            await self._task
        except asyncio.CancelledError:
            pass


class Scheduler:
    """Owns every background task so they can be cancelled together."""

    def __init__(self, sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep) -> None:
        self.sleep = sleep
        self._periodic: list[PeriodicTask] = []
        self._tasks: Set[asyncio.Task] = set()

    @staticmethod
    def has_running_loop() -> bool:
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            return False
        return True

    def every(self, interval: float, fn: Callable[[], Any], name: Optional[str] = None) -> PeriodicTask:
        """Start a periodic task; requires a running event loop."""
        task = PeriodicTask(name or getattr(fn, "__name__", "periodic"), interval, fn)
        self._periodic.append(task.start())
        logger.debug(f"Started periodic task {task.name} every {interval}s")
        return task

    def spawn(self, coro: Coroutine[Any, Any, Any], name: Optional[str] = None) -> asyncio.Task:
        """Run a coroutine in the background and track it until it completes."""
        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def call_later(
        self,
        delay: float,
        factory: Callable[[], Coroutine[Any, Any, Any]],
        name: Optional[str] = None,
    ) -> asyncio.Task:
        """Spawn ``factory()`` after ``delay`` seconds."""

        async def _delayed():
            if delay > 0:
                await self.sleep(delay)
            return await factory()

        return self.spawn(_delayed(), name=name)

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Background task {task.get_name()} failed: {exc}")

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for all currently tracked background tasks."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def cancel_all(self) -> None:
        for periodic in self._periodic:
            periodic.cancel()
        for task in list(self._tasks):
            task.cancel()
        for periodic in self._periodic:
            await periodic.wait_cancelled()
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
        self._periodic.clear()
        self._tasks.clear()
