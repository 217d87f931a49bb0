"""Periodic scheduler for the background tasks.

The TaskScheduler owns a table of background tasks, each with its own
interval. An APScheduler interval job drives a single tick loop; on every
tick each due task runs once, sequentially, on the event loop. A task's
next eligible time is pushed forward after every attempt, whether it
succeeded or failed, so a failing task cannot spin.
"""

import asyncio
import logging
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_MAX_INSTANCES
from apscheduler.executors.asyncio import AsyncIOExecutor
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from doccrawl.timeutil import EPOCH, format_duration, utcnow

logger = logging.getLogger(__name__)

# Tick period ceiling, and the tick period when every task is disabled
DEFAULT_TICK = timedelta(minutes=1)

TICK_JOB_ID = "doccrawl-tick"

TaskAction = Callable[[], Awaitable[Any]]


@dataclass(frozen=True)
class BackgroundTask:
    """A registered background task.

    Records are immutable; the scheduler swaps in a new record after
    each run, so nothing outside the scheduler can move next_eligible.

    Attributes:
        name: Human-readable task name
        action: Coroutine function run on each attempt; raises on failure
        interval: Time between attempts; zero disables the task
        next_eligible: The task runs on the first tick after this time
        run_count: Number of attempts
        error_count: Number of failed attempts
        last_run: When the last attempt started
        last_error: Error message of the last attempt, None if it succeeded
    """

    name: str
    action: TaskAction
    interval: timedelta
    next_eligible: datetime = EPOCH
    run_count: int = 0
    error_count: int = 0
    last_run: Optional[datetime] = None
    last_error: Optional[str] = None

    @property
    def enabled(self) -> bool:
        """Whether the task has a positive interval."""
        return self.interval > timedelta(0)

    def is_due(self, now: datetime) -> bool:
        """Whether the task should run at ``now``."""
        return self.enabled and now > self.next_eligible


class TaskScheduler:
    """Runs background tasks on independent cadences.

    Example:
        scheduler = TaskScheduler()
        scheduler.register("Crawl", orchestrator.run_once, timedelta(seconds=10))
        scheduler.register("GitHub updates", poller.run_once, timedelta(minutes=5))

        await scheduler.run_forever(shutdown_event)
    """

    def __init__(self, clock: Callable[[], datetime] = utcnow) -> None:
        """Initialize the scheduler.

        Args:
            clock: Source of the current naive UTC time
        """
        self._clock = clock
        self._tasks: Dict[str, BackgroundTask] = {}
        self._scheduler: Optional[AsyncIOScheduler] = None
        self._running = False

    @property
    def is_running(self) -> bool:
        """Check if the tick loop is running."""
        return self._running

    @property
    def tasks(self) -> List[BackgroundTask]:
        """All registered tasks, in registration order."""
        return list(self._tasks.values())

    @property
    def enabled_tasks(self) -> List[BackgroundTask]:
        return [t for t in self._tasks.values() if t.enabled]

    def get_task(self, name: str) -> Optional[BackgroundTask]:
        return self._tasks.get(name)

    def register(self, name: str, action: TaskAction, interval: timedelta) -> BackgroundTask:
        """Register a task.

        Args:
            name: Unique task name
            action: Coroutine function to run
            interval: Time between runs; zero disables the task

        Returns:
            The registered task

        Raises:
            ValueError: If the name is taken or the interval is negative
        """
        if name in self._tasks:
            raise ValueError(f"Task already registered: {name}")
        if interval < timedelta(0):
            raise ValueError(f"Task interval must not be negative: {name}")

        task = BackgroundTask(name=name, action=action, interval=interval)
        self._tasks[name] = task

        if task.enabled:
            logger.info(f"Registered task {name} every {format_duration(interval)}")
        else:
            logger.info(f"Registered task {name} (disabled)")
        return task

    def tick_period(self) -> timedelta:
        """Time between ticks.

        The shortest positive task interval, never longer than one minute.
        """
        period = DEFAULT_TICK
        for task in self._tasks.values():
            if task.enabled and task.interval < period:
                period = task.interval
        return period

    async def run_pending(self, now: Optional[datetime] = None) -> List[str]:
        """Run every due task once.

        Args:
            now: Evaluation time; defaults to the clock, read per task

        Returns:
            Names of the tasks that were attempted
        """
        attempted: List[str] = []
        for name in list(self._tasks):
            task = self._tasks[name]
            current = now if now is not None else self._clock()
            if task.is_due(current):
                await self._run(task)
                attempted.append(name)
        return attempted

    async def run_task(self, name: str) -> bool:
        """Run one task immediately, outside its cadence.

        The run counts as a normal attempt and pushes the task's next
        eligible time forward.

        Args:
            name: Name of the task

        Returns:
            True if the task succeeded

        Raises:
            KeyError: If no task has that name
        """
        task = self._tasks[name]
        return await self._run(task)

    async def _run(self, task: BackgroundTask) -> bool:
        started_at = self._clock()
        error: Optional[str] = None

        try:
            await task.action()
        except Exception as e:
            error = str(e) or e.__class__.__name__
            logger.error(f"Task {task.name}: {error}", exc_info=logger.isEnabledFor(logging.DEBUG))

        self._tasks[task.name] = replace(
            task,
            next_eligible=self._clock() + task.interval,
            run_count=task.run_count + 1,
            error_count=task.error_count + (1 if error else 0),
            last_run=started_at,
            last_error=error,
        )
        return error is None

    async def _tick(self) -> None:
        """Callback invoked by APScheduler on every tick."""
        await self.run_pending()

    async def start(self) -> None:
        """Start the tick loop.

        The first tick fires immediately. Must be called with a running
        event loop.
        """
        if self._running:
            logger.warning("Scheduler already running")
            return

        period = self.tick_period()
        self._scheduler = AsyncIOScheduler(
            jobstores={"default": MemoryJobStore()},
            executors={"default": AsyncIOExecutor()},
            job_defaults={
                "coalesce": True,  # Combine missed ticks
                "max_instances": 1,  # Never overlap ticks
                "misfire_grace_time": None,
            },
            timezone="UTC",
        )
        self._setup_listeners()
        self._scheduler.add_job(
            self._tick,
            trigger=IntervalTrigger(seconds=period.total_seconds(), timezone="UTC"),
            id=TICK_JOB_ID,
            name="Background task tick",
            next_run_time=datetime.now(timezone.utc),
        )
        self._scheduler.start()
        self._running = True

        logger.info(
            f"Scheduler started with {len(self.enabled_tasks)} enabled tasks, "
            f"tick every {format_duration(period)}"
        )

    async def stop(self) -> None:
        """Stop the tick loop.

        The loop is meant to run for the life of the process, so stopping
        it is always reported as an error.
        """
        if not self._running:
            return

        if self._scheduler:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None

        self._running = False
        logger.error("Background task loop exiting")

    async def run_forever(self, shutdown_event: asyncio.Event) -> None:
        """Run the tick loop until the shutdown event is set."""
        await self.start()
        try:
            await shutdown_event.wait()
        finally:
            await self.stop()

    def _setup_listeners(self) -> None:
        """Set up APScheduler event listeners."""
        if not self._scheduler:
            return

        def on_tick_error(event: Any) -> None:
            exception = getattr(event, "exception", "Unknown error")
            logger.error(f"Tick failed: {exception}")

        def on_tick_overrun(event: Any) -> None:
            logger.warning("Previous tick still running, skipping this tick")

        self._scheduler.add_listener(on_tick_error, EVENT_JOB_ERROR)
        self._scheduler.add_listener(on_tick_overrun, EVENT_JOB_MAX_INSTANCES)

    def get_status(self) -> Dict[str, Any]:
        """Get scheduler status.

        Returns:
            Dictionary with scheduler and per-task status information
        """
        return {
            "running": self._running,
            "tick_period": format_duration(self.tick_period()),
            "total_tasks": len(self._tasks),
            "enabled_tasks": len(self.enabled_tasks),
            "tasks": [
                {
                    "name": t.name,
                    "enabled": t.enabled,
                    "interval": format_duration(t.interval),
                    "next_eligible": t.next_eligible.isoformat() if t.enabled else None,
                    "last_run": t.last_run.isoformat() if t.last_run else None,
                    "run_count": t.run_count,
                    "error_count": t.error_count,
                    "last_error": t.last_error,
                }
                for t in self._tasks.values()
            ],
        }
