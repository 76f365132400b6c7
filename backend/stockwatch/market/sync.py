"""Fetch-through-cache-through-persist-through-broadcast price sync cycles."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import date, datetime

from ..clock import Clock
from ..realtime.interface import Broadcaster
from .adapter import QuoteSourceAdapter
from .cache import PriceCache
from .interface import PriceStore
from .models import PriceSnapshot

logger = logging.getLogger(__name__)

PRICE_TOPIC = "prices"


@dataclass
class SyncResult:
    """Outcome of one sync cycle."""

    requested: list[str]
    refreshed: list[str] = field(default_factory=list)
    fresh: list[str] = field(default_factory=list)
    missing: list[str] = field(default_factory=list)
    persist_failures: list[str] = field(default_factory=list)


class PriceSyncEngine:
    """Runs price sync cycles for a symbol universe.

    One cycle (`sync_once`):
      1. split symbols into stale (absent or expired in the cache) and fresh
      2. fetch only the stale ones through the QuoteSourceAdapter
      3. derive day change fields, write through to the cache, persist
      4. broadcast a compact delta (symbols + timestamp + active flag)

    A cycle whose symbols overlap a cycle already in flight is skipped, not
    queued, so no symbol is fetched by two concurrent runs. After `failure_threshold` consecutive failed cycles the engine
    reports degraded health and backs off exponentially between attempts; it
    never stops retrying.
    """

    def __init__(
        self,
        cache: PriceCache,
        adapter: QuoteSourceAdapter,
        store: PriceStore,
        broadcaster: Broadcaster,
        clock: Clock,
        is_active: Callable[[], bool] = lambda: False,
        extra_symbols: Callable[[], Iterable[str]] | None = None,
        failure_threshold: int = 10,
        backoff_base: float = 1.0,
        backoff_max: float = 300.0,
    ) -> None:
        self._cache = cache
        self._adapter = adapter
        self._store = store
        self._broadcaster = broadcaster
        self._clock = clock
        self._is_active = is_active
        self._extra_symbols = extra_symbols
        self._failure_threshold = failure_threshold
        self._backoff_base = backoff_base
        self._backoff_max = backoff_max

        self._in_flight: set[frozenset[str]] = set()
        self._pending_writes: dict[str, tuple[PriceSnapshot, date]] = {}
        self._consecutive_failures = 0
        self._degraded = False
        self._backoff_until: float | None = None
        self._skipped_runs = 0
        self._last_sync: datetime | None = None
        self._last_success: datetime | None = None

    # --- Public API ---

    async def sync_universe(self) -> SyncResult | None:
        """Sync every tracked symbol plus any symbols referenced by alert rules."""
        try:
            symbols = list(await self._store.list_tracked_symbols())
        except Exception as e:
            logger.warning("Could not load tracked symbols, using cached universe: %s", e)
            symbols = list(self._cache.get_all())
        if self._extra_symbols is not None:
            symbols.extend(self._extra_symbols())
        return await self.sync_once(symbols)

    async def sync_once(self, symbols: Iterable[str]) -> SyncResult | None:
        """Run one cycle. Returns None if the run was skipped or crashed."""
        universe = list(dict.fromkeys(s.strip().upper() for s in symbols if s and s.strip()))
        if not universe:
            return SyncResult(requested=[])

        key = frozenset(universe)
        if any(key & running for running in self._in_flight):
            self._skipped_runs += 1
            logger.info("Price sync for %d symbols still in flight, skipping this run", len(universe))
            return None

        if self._backoff_until is not None and self._clock.monotonic() < self._backoff_until:
            self._skipped_runs += 1
            logger.debug("Price sync backing off for %.1fs more", self._backoff_until - self._clock.monotonic())
            return None

        self._in_flight.add(key)
        try:
            return await self._run_cycle(universe)
        except Exception:
            logger.exception("Price sync cycle failed")
            self._record_failure()
            return None
        finally:
            self._in_flight.discard(key)

    @property
    def degraded(self) -> bool:
        return self._degraded

    @property
    def consecutive_failures(self) -> int:
        return self._consecutive_failures

    def status(self) -> dict:
        backoff = 0.0
        if self._backoff_until is not None:
            backoff = max(0.0, self._backoff_until - self._clock.monotonic())
        return {
            "healthy": not self._degraded,
            "market_data_delayed": self._degraded,
            "consecutive_failures": self._consecutive_failures,
            "backoff_seconds": round(backoff, 1),
            "last_sync": self._last_sync.isoformat() if self._last_sync else None,
            "last_success": self._last_success.isoformat() if self._last_success else None,
            "pending_writes": len(self._pending_writes),
            "skipped_runs": self._skipped_runs,
            "in_flight": len(self._in_flight),
            "cache_size": len(self._cache),
            "sources": self._adapter.status(),
        }

    # --- Internal ---

    async def _run_cycle(self, symbols: list[str]) -> SyncResult:
        self._last_sync = self._clock.now()
        await self._retry_pending_writes()

        refresh = self._cache.stale_symbols(symbols)
        refresh_set = set(refresh)
        result = SyncResult(requested=symbols, fresh=[s for s in symbols if s not in refresh_set])
        if not refresh:
            logger.debug("All %d symbols fresh, nothing to fetch", len(symbols))
            return result

        fetched = await self._adapter.fetch_many(refresh)
        snapshots = [snap.with_derived_fields() for snap in fetched]
        got = {snap.symbol for snap in snapshots}
        result.missing = [s for s in refresh if s not in got]

        if not snapshots:
            logger.warning("No quotes received for %d symbols", len(refresh))
            self._record_failure()
            return result

        self._cache.put_many(snapshots)

        today = self._clock.today()
        for snap in snapshots:
            if not await self._persist(snap, today):
                result.persist_failures.append(snap.symbol)
            result.refreshed.append(snap.symbol)

        self._record_success()
        self._broadcast(result.refreshed)
        logger.info(
            "Synced %d/%d symbols (%d fresh, %d missing)",
            len(result.refreshed),
            len(symbols),
            len(result.fresh),
            len(result.missing),
        )
        return result

    async def _persist(self, snapshot: PriceSnapshot, day: date) -> bool:
        """Write one snapshot to the store. On failure, keep it for the next cycle."""
        try:
            await self._store.upsert_price_snapshot(snapshot.symbol, snapshot)
            await self._store.append_price_history_if_new_day(snapshot.symbol, snapshot.daily_bar(day))
        except Exception as e:
            logger.warning("Persisting %s failed, will retry next cycle: %s", snapshot.symbol, e)
            self._pending_writes[snapshot.symbol] = (snapshot, day)
            return False
        self._pending_writes.pop(snapshot.symbol, None)
        return True

    async def _retry_pending_writes(self) -> None:
        if not self._pending_writes:
            return
        pending = list(self._pending_writes.values())
        logger.info("Retrying %d pending price writes", len(pending))
        for snapshot, day in pending:
            await self._persist(snapshot, day)

    def _broadcast(self, symbols: list[str]) -> None:
        payload = {
            "symbols": symbols,
            "timestamp": self._clock.now().isoformat(),
            "active": self._is_active(),
            "count": len(symbols),
        }
        try:
            self._broadcaster.publish(PRICE_TOPIC, payload)
        except Exception:
            logger.exception("Error broadcasting price update")

    def _record_failure(self) -> None:
        self._consecutive_failures += 1
        if self._consecutive_failures < self._failure_threshold:
            return
        exponent = min(self._consecutive_failures - self._failure_threshold, 16)
        delay = min(self._backoff_base * 2**exponent, self._backoff_max)
        self._backoff_until = self._clock.monotonic() + delay
        if not self._degraded:
            logger.error("Price sync degraded after %d consecutive failures", self._consecutive_failures)
        self._degraded = True
        logger.warning("Backing off price sync for %.1fs", delay)

    def _record_success(self) -> None:
        if self._degraded:
            logger.info("Price sync recovered after %d failures", self._consecutive_failures)
        self._consecutive_failures = 0
        self._degraded = False
        self._backoff_until = None
        self._last_success = self._clock.now()
