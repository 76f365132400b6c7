"""Declarative job scheduling on top of asyncio tasks.

Each job is a ScheduleRule plus a callback. Interval rules tick every N
seconds and run the callback only when the tick falls on an allowed weekday
and inside the optional time-of-day range, the way a cron line such as
"*/5 9-14 * * 1-5" would. `daily_at` rules sleep until the next wall-clock
occurrence.

Usage:
    scheduler = Scheduler(clock)
    scheduler.add_job("market-sync", ScheduleRule.every(5, weekdays=WEEKDAYS,
                      between=(time(9), time(14, 30))), engine.sync_universe)
    scheduler.add_job("cleanup", ScheduleRule.daily_at(time(0, 0)), cleanup)
    await scheduler.start()
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import datetime, time, timedelta

from .clock import Clock

logger = logging.getLogger(__name__)

WEEKDAYS = frozenset(range(5))  # Monday=0 .. Friday=4


@dataclass(frozen=True)
class ScheduleRule:
    """When a job runs. Exactly one of `interval` or `at` is set."""

    interval: float | None = None
    at: time | None = None
    weekdays: frozenset[int] | None = None
    between: tuple[time, time] | None = None

    def __post_init__(self) -> None:
        if (self.interval is None) == (self.at is None):
            raise ValueError("ScheduleRule needs exactly one of interval or at")
        if self.interval is not None and self.interval <= 0:
            raise ValueError("interval must be positive")
        if self.between is not None and self.between[0] >= self.between[1]:
            raise ValueError("between range must start before it ends")

    @classmethod
    def every(
        cls,
        seconds: float,
        weekdays: Iterable[int] | None = None,
        between: tuple[time, time] | None = None,
    ) -> ScheduleRule:
        return cls(
            interval=seconds,
            weekdays=frozenset(weekdays) if weekdays is not None else None,
            between=between,
        )

    @classmethod
    def daily_at(cls, at: time, weekdays: Iterable[int] | None = None) -> ScheduleRule:
        return cls(at=at, weekdays=frozenset(weekdays) if weekdays is not None else None)

    def allows(self, now: datetime) -> bool:
        """Is `now` on an allowed weekday and inside the time-of-day range?"""
        if self.weekdays is not None and now.weekday() not in self.weekdays:
            return False
        if self.between is not None:
            start, end = self.between
            if not start <= now.time() < end:
                return False
        return True

    def next_delay(self, now: datetime) -> float:
        """Seconds from `now` until the next tick."""
        if self.interval is not None:
            return self.interval

        target = now.replace(hour=self.at.hour, minute=self.at.minute, second=self.at.second, microsecond=0)
        for days in range(8):
            candidate = target + timedelta(days=days)
            if candidate <= now:
                continue
            if self.weekdays is None or candidate.weekday() in self.weekdays:
                return (candidate - now).total_seconds()
        raise ValueError("ScheduleRule has no allowed weekdays")


class _Job:
    def __init__(self, name: str, rule: ScheduleRule, callback: Callable, run_immediately: bool) -> None:
        self.name = name
        self.rule = rule
        self.callback = callback
        self.run_immediately = run_immediately
        self.task: asyncio.Task | None = None
        self.running = False
        self.removed = False
        self.runs = 0
        self.errors = 0
        self.last_run: datetime | None = None


class Scheduler:
    """Runs named jobs as asyncio tasks.

    Callbacks may be plain functions or coroutine functions. A callback that
    raises is logged and the job keeps its schedule. Removing a job while its
    callback is running lets that run finish; the job just does not tick again.
    """

    def __init__(self, clock: Clock) -> None:
        self._clock = clock
        self._jobs: dict[str, _Job] = {}
        self._started = False

    def add_job(
        self,
        name: str,
        rule: ScheduleRule,
        callback: Callable,
        run_immediately: bool = False,
    ) -> None:
        """Register a job, replacing any job with the same name."""
        if name in self._jobs:
            self.remove_job(name)
        job = _Job(name, rule, callback, run_immediately)
        self._jobs[name] = job
        if self._started:
            self._spawn(job)
        logger.debug("Added job %s", name)

    def remove_job(self, name: str) -> bool:
        job = self._jobs.pop(name, None)
        if job is None:
            return False
        job.removed = True
        if job.task and not job.running:
            job.task.cancel()
        logger.debug("Removed job %s", name)
        return True

    def has_job(self, name: str) -> bool:
        return name in self._jobs

    def job_names(self) -> list[str]:
        return sorted(self._jobs)

    async def start(self) -> None:
        if self._started:
            return
        self._started = True
        for job in self._jobs.values():
            self._spawn(job)
        logger.info("Scheduler started with %d jobs", len(self._jobs))

    async def stop(self) -> None:
        self._started = False
        tasks = [job.task for job in self._jobs.values() if job.task]
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        for job in self._jobs.values():
            job.task = None
        logger.info("Scheduler stopped")

    def status(self) -> dict:
        return {
            name: {
                "runs": job.runs,
                "errors": job.errors,
                "last_run": job.last_run.isoformat() if job.last_run else None,
            }
            for name, job in sorted(self._jobs.items())
        }

    # --- Internal ---

    def _spawn(self, job: _Job) -> None:
        job.task = asyncio.create_task(self._run_job(job), name=f"job-{job.name}")

    async def _run_job(self, job: _Job) -> None:
        if job.run_immediately and job.rule.allows(self._clock.now()):
            await self._invoke(job)
        while not job.removed:
            await self._clock.sleep(job.rule.next_delay(self._clock.now()))
            if job.removed:
                break
            if job.rule.allows(self._clock.now()):
                await self._invoke(job)

    async def _invoke(self, job: _Job) -> None:
        job.running = True
        try:
            result = job.callback()
            if inspect.isawaitable(result):
                await result
        except Exception:
            job.errors += 1
            logger.exception("Job %s failed", job.name)
        finally:
            job.running = False
            job.runs += 1
            job.last_run = self._clock.now()
