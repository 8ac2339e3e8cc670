"""
Background loops owned by the app lifespan.

Each PeriodicTask fires every `interval` seconds and runs its synchronous tick
in a worker thread. A tick that is still in flight when the next one is due
causes that next one to be skipped, so a slow remote call can never overlap
itself. Exceptions from a tick are logged and counted; the loop keeps going.
"""

import asyncio
from typing import Callable, Dict, List, Optional

from app.log import get_logger

logger = get_logger(__name__)


class PeriodicTask:
    def __init__(self, name: str, interval: float, fn: Callable[[], object]):
        self.name = name
        self.interval = interval
        self.fn = fn
        self.runs = 0
        self.skipped = 0
        self.failures = 0
        self.last_error: Optional[str] = None
        self._loop_task: Optional[asyncio.Task] = None
        self._inflight: Optional[asyncio.Task] = None

    @property
    def busy(self) -> bool:
        return self._inflight is not None and not self._inflight.done()

    async def _tick(self):
        try:
            await asyncio.to_thread(self.fn)
            self.runs += 1
        except Exception as e:
            self.failures += 1
            self.last_error = str(e)[:500]
            logger.exception("scheduled_task_failed", task=self.name)

    def trigger(self) -> bool:
        """Start a tick now unless one is already running. Must be called on the event loop."""
        if self.busy:
            self.skipped += 1
            logger.debug("scheduled_task_skipped", task=self.name)
            return False
        self._inflight = asyncio.get_running_loop().create_task(self._tick())
        return True

    async def _run(self):
        while True:
            self.trigger()
            await asyncio.sleep(self.interval)

    def start(self):
        if self._loop_task is None:
            self._loop_task = asyncio.get_running_loop().create_task(self._run())

    async def stop(self):
        if self._loop_task is not None:
            self._loop_task.cancel()
            try:
                await self._loop_task
            except asyncio.CancelledError:
                pass
            self._loop_task = None
        # the thread can't be interrupted; let the current tick finish
        if self._inflight is not None:
            await self._inflight
            self._inflight = None

    def snapshot(self) -> Dict:
        return {
            "name": self.name,
            "interval": self.interval,
            "running": self._loop_task is not None,
            "busy": self.busy,
            "runs": self.runs,
            "skipped": self.skipped,
            "failures": self.failures,
            "last_error": self.last_error,
        }


class Scheduler:
    def __init__(self, tasks: Optional[List[PeriodicTask]] = None):
        self.tasks: List[PeriodicTask] = list(tasks or [])

    def add(self, name: str, interval: float, fn: Callable[[], object]) -> PeriodicTask:
        task = PeriodicTask(name, interval, fn)
        self.tasks.append(task)
        return task

    def start(self):
        for t in self.tasks:
            t.start()
        logger.info("scheduler_started", tasks=[t.name for t in self.tasks])

    async def stop(self):
        for t in self.tasks:
            await t.stop()
        logger.info("scheduler_stopped")

    def snapshot(self) -> List[Dict]:
        return [t.snapshot() for t in self.tasks]
