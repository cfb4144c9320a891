"""Clock, one-shot timers and cancellable periodic tasks."""

from __future__ import annotations

import asyncio
import logging
import time
from contextlib import suppress
from typing import Awaitable, Callable, Optional, Protocol

logger = logging.getLogger(__name__)


def now_ms() -> int:
    return int(time.time() * 1000)


class TimerHandle(Protocol):
    def cancel(self) -> None:
        ...


class Timers(Protocol):
    """Schedules one-shot callbacks ``delay_ms`` from now."""

    def call_later(self, delay_ms: int, callback: Callable[[], None]) -> TimerHandle:
        ...


class LoopTimers:
    """:class:`Timers` backed by the running asyncio event loop."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        self._loop = loop

    def call_later(self, delay_ms: int, callback: Callable[[], None]) -> TimerHandle:
        loop = self._loop or asyncio.get_running_loop()
        return loop.call_later(max(delay_ms, 0) / 1000, callback)


class PeriodicTask:
    """Runs an async callback every ``interval_ms`` until stopped.

    Each start bumps a generation counter; an iteration that wakes up under an
    older generation exits without calling back, so a stopped or restarted
    task never delivers a stale tick.
    """

    def __init__(
        self,
        name: str,
        interval_ms: int,
        callback: Callable[[], Awaitable[None]],
    ) -> None:
        self.name = name
        self.interval_ms = interval_ms
        self._callback = callback
        self._generation = 0
        self._task: Optional[asyncio.Task[None]] = None

    @property
    def generation(self) -> int:
        return self._generation

    def is_running(self) -> bool:
        return bool(self._task and not self._task.done())

    def start(self) -> None:
        if self.is_running():
            return
        self._generation += 1
        self._task = asyncio.get_running_loop().create_task(
            self._run(self._generation), name=self.name
        )
        logger.debug("Periodic task %s started (generation %d).", self.name, self._generation)

    async def stop(self) -> None:
        self._generation += 1
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with suppress(asyncio.CancelledError):
            await task
        logger.debug("Periodic task %s stopped.", self.name)

    async def _run(self, generation: int) -> None:
        interval = self.interval_ms / 1000
        while generation == self._generation:
            await asyncio.sleep(interval)
            if generation != self._generation:
                return
            try:
                await self._callback()
            except Exception:
                logger.exception("Periodic task %s failed.", self.name)
