"""Time-of-day activation window: switches the engine between ACTIVE and STANDBY cadence."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import datetime, time, timedelta
from enum import Enum

from ..clock import Clock
from ..realtime.interface import Broadcaster
from ..scheduling import ScheduleRule, Scheduler

logger = logging.getLogger(__name__)

STATUS_TOPIC = "server-status"
FAILSAFE_JOB = "activation-check"
START_JOB = "activation-start"
END_JOB = "activation-end"


class ActivationState(str, Enum):
    ACTIVE = "active"
    STANDBY = "standby"


@dataclass(frozen=True)
class ActivationWindow:
    """A daily [start, end) window of local wall-clock time."""

    start: time
    end: time

    def __post_init__(self) -> None:
        if self.start >= self.end:
            raise ValueError("activation window must start before it ends")

    def contains(self, now: datetime) -> bool:
        return self.start <= now.time() < self.end

    def _at(self, now: datetime, moment: time) -> datetime:
        return now.replace(hour=moment.hour, minute=moment.minute, second=moment.second, microsecond=0)

    def next_start(self, now: datetime) -> datetime:
        start = self._at(now, self.start)
        return start if start > now else start + timedelta(days=1)

    def next_end(self, now: datetime) -> datetime:
        end = self._at(now, self.end)
        return end if end > now else end + timedelta(days=1)

    def next_boundary(self, now: datetime) -> datetime:
        return min(self.next_start(now), self.next_end(now))

    def label(self) -> str:
        return f"{self.start:%H:%M} - {self.end:%H:%M}"


@dataclass(frozen=True)
class ActiveJob:
    """A fast-cadence job that only exists while the engine is ACTIVE."""

    name: str
    rule: ScheduleRule
    callback: Callable


class ActiveWindowController:
    """STANDBY <-> ACTIVE state machine.

    Driven by `check()`, which the controller schedules every minute as a
    failsafe and at both window boundaries. Entering ACTIVE registers the
    fast jobs on the scheduler and broadcasts on `server-status`; entering
    STANDBY removes them and broadcasts. Baseline jobs registered elsewhere
    are never touched. Re-entering the current state does nothing.

    `force_activate()` / `force_deactivate()` override the window until the
    next boundary, after which the wall clock decides again.
    """

    def __init__(
        self,
        window: ActivationWindow,
        scheduler: Scheduler,
        broadcaster: Broadcaster,
        clock: Clock,
        active_jobs: Sequence[ActiveJob] = (),
        active_ttl: float = 30.0,
        standby_ttl: float = 300.0,
        check_interval: float = 60.0,
    ) -> None:
        self._window = window
        self._scheduler = scheduler
        self._broadcaster = broadcaster
        self._clock = clock
        self._active_jobs = list(active_jobs)
        self._active_ttl = active_ttl
        self._standby_ttl = standby_ttl
        self._check_interval = check_interval

        self._state = ActivationState.STANDBY
        self._override: ActivationState | None = None
        self._override_until: datetime | None = None
        self._transitions = 0
        self._last_transition: datetime | None = None

    # --- Public API ---

    @property
    def state(self) -> ActivationState:
        return self._state

    @property
    def is_active(self) -> bool:
        return self._state == ActivationState.ACTIVE

    @property
    def transitions(self) -> int:
        return self._transitions

    def staleness_window(self) -> float:
        """Cache TTL for the current state."""
        return self._active_ttl if self.is_active else self._standby_ttl

    async def start(self) -> None:
        """Register the failsafe and boundary checks, then move to the state the clock calls for."""
        self._scheduler.add_job(FAILSAFE_JOB, ScheduleRule.every(self._check_interval), self.check)
        self._scheduler.add_job(START_JOB, ScheduleRule.daily_at(self._window.start), self.check)
        self._scheduler.add_job(END_JOB, ScheduleRule.daily_at(self._window.end), self.check)
        logger.info(
            "Activation window %s (%s), currently %s",
            self._window.label(),
            self._clock.tz,
            self._state.value,
        )
        self.check()

    def check(self) -> ActivationState:
        """Compare the wall clock (or an unexpired override) to the current state."""
        now = self._clock.now()
        if self._override is not None and self._override_until is not None and now >= self._override_until:
            logger.info("Manual %s override expired at %s", self._override.value, self._override_until)
            self._override = None
            self._override_until = None

        if self._override is not None:
            desired = self._override
        elif self._window.contains(now):
            desired = ActivationState.ACTIVE
        else:
            desired = ActivationState.STANDBY
        self._enter(desired, now)
        return self._state

    def force_activate(self) -> ActivationState:
        logger.info("Manual activation requested")
        return self._force(ActivationState.ACTIVE)

    def force_deactivate(self) -> ActivationState:
        logger.info("Manual deactivation requested")
        return self._force(ActivationState.STANDBY)

    def status(self) -> dict:
        now = self._clock.now()
        next_start = self._window.next_start(now)
        next_end = self._window.next_end(now)
        return {
            "state": self._state.value,
            "is_active": self.is_active,
            "timezone": str(self._clock.tz),
            "active_hours": self._window.label(),
            "current_time": now.isoformat(),
            "next_start": next_start.isoformat(),
            "next_end": next_end.isoformat(),
            "next_transition": min(next_start, next_end).isoformat(),
            "override": self._override.value if self._override else None,
            "override_until": self._override_until.isoformat() if self._override_until else None,
            "staleness_window": self.staleness_window(),
            "transitions": self._transitions,
        }

    # --- Internal ---

    def _force(self, state: ActivationState) -> ActivationState:
        now = self._clock.now()
        self._override = state
        self._override_until = self._window.next_boundary(now)
        self._enter(state, now)
        return self._state

    def _enter(self, state: ActivationState, now: datetime) -> None:
        if state == self._state:
            return
        self._state = state
        self._transitions += 1
        self._last_transition = now

        if state == ActivationState.ACTIVE:
            for job in self._active_jobs:
                if not self._scheduler.has_job(job.name):
                    self._scheduler.add_job(job.name, job.rule, job.callback)
            message = f"Server is now active ({self._window.label()})"
            logger.info("Entering ACTIVE hours at %s", now.isoformat())
        else:
            for job in self._active_jobs:
                self._scheduler.remove_job(job.name)
            message = "Server in standby mode (outside trading hours)"
            logger.info("Entering STANDBY mode at %s", now.isoformat())

        payload = {"status": state.value, "message": message, "timestamp": now.isoformat()}
        try:
            self._broadcaster.publish(STATUS_TOPIC, payload)
        except Exception:
            logger.exception("Error broadcasting activation state")
