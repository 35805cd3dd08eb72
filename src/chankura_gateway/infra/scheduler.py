"""
Periodic tick scheduling.

Each component tick runs in its own asyncio task: run once immediately, then
await the tick to completion before sleeping for the interval. A slow tick
therefore delays the next one instead of overlapping it, which keeps cursor
updates of a single component strictly ordered.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Dict, List, Optional

from chankura_gateway.infra.logging_cfg import LOGGER_NAME, log_event

log = logging.getLogger(LOGGER_NAME)

Tick = Callable[[], Awaitable[object]]


class PeriodicTask:
    def __init__(self, name: str, interval_sec: float, tick: Tick) -> None:
        if interval_sec <= 0:
            raise ValueError(f"interval for {name} must be > 0")
        self.name = name
        self.interval_sec = interval_sec
        self._tick = tick
        self._task: Optional[asyncio.Task] = None
        self.runs = 0
        self.errors = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._loop(), name=f"tick:{self.name}")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        await asyncio.gather(self._task, return_exceptions=True)
        self._task = None

    async def _loop(self) -> None:
        while True:
            try:
                await self._tick()
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                # components handle their own failures; this only guards the schedule
                self.errors += 1
                log_event(log, "tick_error", level=logging.ERROR, source=self.name, err=str(exc),
                          error_type=type(exc).__name__)
            self.runs += 1
            await asyncio.sleep(self.interval_sec)


class Scheduler:
    """Named set of periodic tasks started and stopped together."""

    def __init__(self) -> None:
        self._tasks: Dict[str, PeriodicTask] = {}

    def add(self, name: str, interval_sec: float, tick: Tick) -> PeriodicTask:
        if name in self._tasks:
            raise ValueError(f"duplicate task name: {name}")
        task = PeriodicTask(name, interval_sec, tick)
        self._tasks[name] = task
        return task

    def get(self, name: str) -> Optional[PeriodicTask]:
        return self._tasks.get(name)

    @property
    def names(self) -> List[str]:
        return list(self._tasks)

    def start(self) -> None:
        for task in self._tasks.values():
            task.start()
        log_event(log, "scheduler_started", tasks={n: t.interval_sec for n, t in self._tasks.items()})

    async def stop(self) -> None:
        await asyncio.gather(*(t.stop() for t in self._tasks.values()))
        log_event(log, "scheduler_stopped")
