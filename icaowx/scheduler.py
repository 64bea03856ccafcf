"""Periodic task scheduling on the asyncio event loop.

The delay between runs starts counting once a run has completed, so a task
never overlaps itself. Different tasks run concurrently with each other.
"""

import asyncio
import logging
from typing import Awaitable, Callable, List, Optional

logger = logging.getLogger(__name__)


class PeriodicTask:
    """Runs an async function, waits delay_seconds, and repeats until stopped."""

    def __init__(self, name: str, func: Callable[[], Awaitable[object]], delay_seconds: float):
        self.name = name
        self.func = func
        self.delay_seconds = delay_seconds
        self.runs = 0
        self._stop_event: Optional[asyncio.Event] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the task on the running event loop."""
        if self.running:
            return
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._loop(), name=f"periodic:{self.name}")
        logger.info(f"Scheduled {self.name} every {self.delay_seconds}s")

    def stop(self) -> None:
        """
        Prevent further runs.

        A run already in progress is not interrupted; it finishes (or hits
        its own timeout) before the loop exits.
        """
        if self._stop_event is not None:
            self._stop_event.set()

    async def wait(self) -> None:
        """Wait for the loop to exit after stop()."""
        if self._task is not None:
            await self._task

    async def cancel(self) -> None:
        """Cancel a run in progress and wait for the loop to exit."""
        if self._task is None or self._task.done():
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        logger.info(f"Cancelled {self.name}")

    async def _loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                await self.func()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Error in scheduled task {self.name}: {e}", exc_info=True)
            self.runs += 1
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.delay_seconds)
            except asyncio.TimeoutError:
                pass
        logger.info(f"Stopped {self.name}")


class Scheduler:
    """A group of periodic tasks started and stopped together."""

    def __init__(self):
        self.tasks: List[PeriodicTask] = []

    def add(self, name: str, func: Callable[[], Awaitable[object]], delay_seconds: float) -> PeriodicTask:
        task = PeriodicTask(name, func, delay_seconds)
        self.tasks.append(task)
        return task

    def start(self) -> None:
        for task in self.tasks:
            task.start()

    def stop(self) -> None:
        for task in self.tasks:
            task.stop()

    async def wait(self) -> None:
        await asyncio.gather(*(task.wait() for task in self.tasks))

    async def cancel(self) -> None:
        await asyncio.gather(*(task.cancel() for task in self.tasks))

    async def shutdown(self, timeout: float) -> bool:
        """
        Stop all tasks, cancelling any still running after timeout seconds.

        Returns:
            True if every task finished on its own
        """
        self.stop()
        try:
            await asyncio.wait_for(asyncio.shield(self.wait()), timeout=timeout)
            return True
        except asyncio.TimeoutError:
            await self.cancel()
            return False


def build_scheduler(ingestors) -> Scheduler:
    """
    Schedule each ingestor's own run() with its interval.

    Args:
        ingestors: (FeedIngestor, interval_seconds) pairs
    """
    scheduler = Scheduler()
    for ingestor, interval in ingestors:
        scheduler.add(ingestor.name, ingestor.run, interval)
    return scheduler
