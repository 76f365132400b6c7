"""Builds the engine components and wires them together."""

from __future__ import annotations

import logging
from datetime import time

from .activation import ActivationWindow, ActiveJob, ActiveWindowController
from .alerts import AlertEvaluationEngine, AlertStore, AlertWorkingSet, DispatchQueue, NotificationSender
from .alerts.notifications import create_notification_sender
from .clock import Clock, SystemClock
from .config import Settings
from .market import PriceCache, PriceStore, PriceSyncEngine, QuoteSourceAdapter, create_quote_adapter
from .market.seed_prices import SEED_PRICES
from .memory_store import InMemoryStore
from .realtime import BroadcastHub
from .scheduling import WEEKDAYS, ScheduleRule, Scheduler

logger = logging.getLogger(__name__)

MIDNIGHT = time(0, 0)


class Runtime:
    """Owns every long-lived component. No module-level singletons.

    Baseline jobs (slow sync, slow evaluation, working-set reload, expired
    alert cleanup) and the dispatch drain run for the life of the process.
    The fast market-hours jobs belong to the activation controller, which
    adds and removes them as the window opens and closes.
    """

    def __init__(
        self,
        settings: Settings,
        clock: Clock | None = None,
        price_store: PriceStore | None = None,
        alert_store: AlertStore | None = None,
        adapter: QuoteSourceAdapter | None = None,
        sender: NotificationSender | None = None,
    ) -> None:
        self.settings = settings
        self.clock = clock or SystemClock(settings.tz)

        default_store = None
        if price_store is None or alert_store is None:
            default_store = InMemoryStore(symbols=SEED_PRICES)
        self.price_store = price_store or default_store
        self.alert_store = alert_store or default_store

        self.hub = BroadcastHub()
        self.scheduler = Scheduler(self.clock)
        self.cache = PriceCache(staleness_window=self._staleness_window, timer=self.clock.monotonic)
        self.adapter = adapter or create_quote_adapter(settings)

        self.working_set = AlertWorkingSet(self.alert_store, self.clock)
        self.dispatcher = DispatchQueue(
            self.alert_store,
            self.working_set,
            sender or create_notification_sender(settings),
            self.hub,
            self.clock,
            interval=settings.dispatch_interval,
            currency=settings.currency,
        )
        self.evaluator = AlertEvaluationEngine(
            self.working_set, self.cache, self.dispatcher, self.clock, currency=settings.currency
        )
        self.sync = PriceSyncEngine(
            self.cache,
            self.adapter,
            self.price_store,
            self.hub,
            self.clock,
            is_active=self._is_active,
            extra_symbols=self.working_set.symbols,
            failure_threshold=settings.failure_threshold,
            backoff_base=settings.backoff_base,
            backoff_max=settings.backoff_max,
        )
        self.controller = ActiveWindowController(
            ActivationWindow(settings.active_start, settings.active_end),
            self.scheduler,
            self.hub,
            self.clock,
            active_jobs=self._active_jobs(),
            active_ttl=settings.active_ttl,
            standby_ttl=settings.standby_ttl,
            check_interval=settings.window_check_interval,
        )
        self._started = False

    async def start(self) -> None:
        if self._started:
            return
        self._started = True
        s = self.settings

        await self.working_set.reload()

        self.scheduler.add_job(
            "baseline-sync", ScheduleRule.every(s.baseline_sync_interval), self.sync.sync_universe, run_immediately=True
        )
        self.scheduler.add_job(
            "baseline-evaluation", ScheduleRule.every(s.baseline_eval_interval), self.evaluator.evaluate_all
        )
        self.scheduler.add_job("alert-reload", ScheduleRule.every(s.reload_interval), self.working_set.reload)
        self.scheduler.add_job("expired-cleanup", ScheduleRule.daily_at(MIDNIGHT), self.cleanup_expired)

        await self.controller.start()
        await self.scheduler.start()
        await self.dispatcher.start()
        logger.info("Runtime started (%s, %s)", s.timezone, self.controller.state.value)

    async def stop(self) -> None:
        if not self._started:
            return
        self._started = False
        await self.scheduler.stop()
        await self.dispatcher.stop()
        await self.adapter.close()
        logger.info("Runtime stopped")

    async def cleanup_expired(self) -> int:
        """Deactivate expired alerts in the store and drop them from the working set."""
        now = self.clock.now()
        try:
            count = await self.alert_store.deactivate_expired_alerts(now)
        except Exception as e:
            logger.warning("Expired alert cleanup failed: %s", e)
            count = 0
        self.working_set.prune(now)
        return count

    def status(self) -> dict:
        return {
            "sync": self.sync.status(),
            "alerts": {
                "working_set": self.working_set.status(),
                "evaluation": self.evaluator.status(),
                "dispatch": self.dispatcher.status(),
            },
            "activation": self.controller.status(),
            "jobs": self.scheduler.status(),
            "subscribers": self.hub.subscriber_count,
        }

    # --- Internal ---

    def _is_active(self) -> bool:
        return self.controller.is_active

    def _staleness_window(self) -> float:
        return self.controller.staleness_window()

    def _active_jobs(self) -> list[ActiveJob]:
        s = self.settings
        return [
            ActiveJob(
                "market-sync",
                ScheduleRule.every(s.market_sync_interval, weekdays=WEEKDAYS, between=(s.active_start, s.closing_start)),
                self.sync.sync_universe,
            ),
            ActiveJob(
                "closing-sync",
                ScheduleRule.every(s.closing_sync_interval, weekdays=WEEKDAYS, between=(s.closing_start, s.active_end)),
                self.sync.sync_universe,
            ),
            ActiveJob(
                "active-evaluation",
                ScheduleRule.every(s.active_eval_interval, weekdays=WEEKDAYS, between=(s.active_start, s.active_end)),
                self.evaluator.evaluate_all,
            ),
        ]
