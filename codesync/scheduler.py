"""
Repeating-timer abstraction used by both sync coordinators.

- ThreadedScheduler: real time, APScheduler BackgroundScheduler underneath.
  max_instances=1 keeps a slow tick from overlapping the next one; coalesce
  folds missed runs into one. shutdown(wait=True) lets an in-flight tick
  finish, so a send is either completed or never started.
- ManualScheduler: simulated time driven by a ManualClock, for tests and
  anything else that wants deterministic ticks.

A tick callback that raises is logged and the schedule keeps running.
"""

import logging
import time
from abc import ABC, abstractmethod
from typing import Callable, List, Optional

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

logger = logging.getLogger(__name__)

Clock = Callable[[], float]
TickCallback = Callable[[], None]


def system_clock() -> float:
    return time.time()


class ManualClock:
    """Clock whose time only moves when told to."""

    def __init__(self, start: float = 0.0):
        self.now = float(start)

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> float:
        self.now += seconds
        return self.now

    def set(self, timestamp: float) -> None:
        self.now = float(timestamp)


def _guarded(callback: TickCallback, name: str) -> TickCallback:
    def run():
        try:
            callback()
        except Exception:
            logger.exception("Scheduled task %s failed", name)
    return run


class ScheduledTask(ABC):
    @abstractmethod
    def cancel(self) -> None:
        ...

    @property
    @abstractmethod
    def active(self) -> bool:
        ...


class Scheduler(ABC):
    @abstractmethod
    def every(self, interval: float, callback: TickCallback, name: Optional[str] = None) -> ScheduledTask:
        """Run `callback` every `interval` seconds until the task is cancelled."""

    def shutdown(self, wait: bool = True) -> None:
        pass


# --- Real time -------------------------------------------------------------
class _JobTask(ScheduledTask):
    def __init__(self, job):
        self._job = job
        self._active = True

    def cancel(self) -> None:
        if not self._active:
            return
        self._active = False
        try:
            self._job.remove()
        except JobLookupError:
            pass

    @property
    def active(self) -> bool:
        return self._active


class ThreadedScheduler(Scheduler):
    def __init__(self):
        self._scheduler = BackgroundScheduler(daemon=True)

    def every(self, interval: float, callback: TickCallback, name: Optional[str] = None) -> ScheduledTask:
        if interval <= 0:
            raise ValueError(f"interval must be > 0, got {interval!r}")
        name = name or getattr(callback, "__name__", "task")
        job = self._scheduler.add_job(
            _guarded(callback, name),
            IntervalTrigger(seconds=interval),
            name=name,
            max_instances=1,
            coalesce=True,
        )
        if not self._scheduler.running:
            self._scheduler.start()
        return _JobTask(job)

    def shutdown(self, wait: bool = True) -> None:
        if self._scheduler.running:
            self._scheduler.shutdown(wait=wait)
            # a stopped BackgroundScheduler keeps its dead worker pool
            self._scheduler = BackgroundScheduler(daemon=True)

    @property
    def running(self) -> bool:
        return self._scheduler.running


# --- Simulated time --------------------------------------------------------
class _ManualTask(ScheduledTask):
    def __init__(self, interval: float, callback: TickCallback, name: str, next_due: float):
        self.interval = interval
        self.callback = _guarded(callback, name)
        self.name = name
        self.next_due = next_due
        self._active = True

    def cancel(self) -> None:
        self._active = False

    @property
    def active(self) -> bool:
        return self._active


class ManualScheduler(Scheduler):
    """
    Ticks fire only inside advance()/run_pending(), at their exact due times.

        clock = ManualClock(1000)
        scheduler = ManualScheduler(clock)
        scheduler.every(5, push)
        scheduler.advance(12)   # push runs at t=1005 and t=1010
    """

    def __init__(self, clock: Optional[ManualClock] = None):
        self.clock = clock or ManualClock()
        self._tasks: List[_ManualTask] = []

    @property
    def tasks(self) -> List[ScheduledTask]:
        return [t for t in self._tasks if t.active]

    def every(self, interval: float, callback: TickCallback, name: Optional[str] = None) -> ScheduledTask:
        if interval <= 0:
            raise ValueError(f"interval must be > 0, got {interval!r}")
        name = name or getattr(callback, "__name__", "task")
        task = _ManualTask(interval, callback, name, self.clock() + interval)
        self._tasks.append(task)
        return task

    def run_pending(self) -> int:
        """Run every task that is due at the current time; returns the number of ticks."""
        return self._run_until(self.clock())

    def advance(self, seconds: float) -> int:
        """Move the clock forward, firing ticks in due order along the way."""
        target = self.clock() + seconds
        ran = self._run_until(target)
        self.clock.set(target)
        return ran

    def _run_until(self, target: float) -> int:
        ran = 0
        while True:
            self._tasks = [t for t in self._tasks if t.active]
            due = [t for t in self._tasks if t.next_due <= target]
            if not due:
                return ran
            task = min(due, key=lambda t: t.next_due)
            self.clock.set(max(self.clock(), task.next_due))
            task.next_due += task.interval
            task.callback()
            ran += 1

    def shutdown(self, wait: bool = True) -> None:
        for task in self._tasks:
            task.cancel()
        self._tasks = []
