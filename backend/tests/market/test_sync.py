"""Tests for PriceSyncEngine."""

import asyncio

import pytest

from stockwatch.errors import PersistenceFailure
from stockwatch.market.adapter import QuoteSourceAdapter
from stockwatch.market.cache import PriceCache
from stockwatch.market.interface import QuoteProvider
from stockwatch.market.models import PriceSnapshot
from stockwatch.market.sync import PRICE_TOPIC, PriceSyncEngine
from stockwatch.memory_store import InMemoryStore


class FakeProvider(QuoteProvider):
    name = "fake"

    def __init__(self, prices=None, error=None):
        self.prices = dict(prices or {})
        self.error = error
        self.calls = []
        self.gate = None

    async def fetch_quotes(self, symbols):
        self.calls.append(list(symbols))
        if self.gate is not None:
            await self.gate.wait()
        if self.error:
            raise self.error
        return [
            PriceSnapshot(symbol=s, current_price=self.prices[s], previous_close=100_000.0)
            for s in symbols
            if s in self.prices
        ]


class FlakyStore(InMemoryStore):
    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.fail_writes = False
        self.fail_listing = False

    async def list_tracked_symbols(self):
        if self.fail_listing:
            raise ConnectionError("db down")
        return await super().list_tracked_symbols()

    async def upsert_price_snapshot(self, symbol, snapshot):
        if self.fail_writes:
            raise PersistenceFailure("db down")
        await super().upsert_price_snapshot(symbol, snapshot)


async def _no_sleep(seconds):
    return None


@pytest.fixture
def provider():
    return FakeProvider({"VNM": 105_000.0, "FPT": 96_000.0})


@pytest.fixture
def store():
    return FlakyStore(symbols=["VNM", "FPT"])


@pytest.fixture
def cache(clock):
    return PriceCache(staleness_window=30, timer=clock.monotonic)


@pytest.fixture
def engine(cache, provider, store, broadcaster, clock):
    adapter = QuoteSourceAdapter([provider], sleep=_no_sleep)
    return PriceSyncEngine(
        cache,
        adapter,
        store,
        broadcaster,
        clock,
        is_active=lambda: True,
        failure_threshold=3,
        backoff_base=1.0,
        backoff_max=8.0,
    )


@pytest.mark.asyncio
class TestPriceSyncEngine:
    """Unit tests for sync cycles."""

    async def test_cycle_fills_cache_and_store(self, engine, cache, store):
        result = await engine.sync_once(["VNM", "FPT"])

        assert sorted(result.refreshed) == ["FPT", "VNM"]
        assert cache.get("VNM").current_price == 105_000
        assert cache.get("VNM").day_change_percent == 5.0
        assert store.snapshot("FPT").current_price == 96_000
        assert len(store.history("VNM")) == 1

    async def test_broadcasts_compact_delta(self, engine, broadcaster):
        await engine.sync_once(["VNM"])

        topic, payload = broadcaster.events[-1]
        assert topic == PRICE_TOPIC
        assert payload["symbols"] == ["VNM"]
        assert payload["active"] is True
        assert payload["count"] == 1

    async def test_fresh_symbols_not_refetched(self, engine, provider, clock):
        """Symbols written inside the staleness window are not fetched again."""
        await engine.sync_once(["VNM"])
        clock.advance(seconds=10)
        result = await engine.sync_once(["VNM", "FPT"])

        assert provider.calls == [["VNM"], ["FPT"]]
        assert result.fresh == ["VNM"]
        assert result.refreshed == ["FPT"]

    async def test_stale_symbols_refetched(self, engine, provider, clock):
        await engine.sync_once(["VNM"])
        clock.advance(seconds=30)
        await engine.sync_once(["VNM"])
        assert provider.calls == [["VNM"], ["VNM"]]

    async def test_missing_symbols_reported(self, engine):
        result = await engine.sync_once(["VNM", "HPG"])
        assert result.missing == ["HPG"]

    async def test_empty_universe(self, engine, provider):
        result = await engine.sync_once([])
        assert result.requested == []
        assert provider.calls == []

    async def test_universe_includes_extra_symbols(self, cache, provider, store, broadcaster, clock):
        adapter = QuoteSourceAdapter([provider], sleep=_no_sleep)
        engine = PriceSyncEngine(cache, adapter, store, broadcaster, clock, extra_symbols=lambda: {"HPG"})
        provider.prices["HPG"] = 27_000.0

        result = await engine.sync_universe()

        assert sorted(result.requested) == ["FPT", "HPG", "VNM"]

    async def test_universe_falls_back_to_cache_keys(self, engine, store, provider, clock):
        await engine.sync_once(["VNM"])
        store.fail_listing = True
        clock.advance(seconds=60)

        result = await engine.sync_universe()

        assert result.requested == ["VNM"]

    async def test_in_flight_run_is_skipped(self, engine, provider):
        """A second run for the same universe is skipped, not queued."""
        provider.gate = asyncio.Event()
        first = asyncio.create_task(engine.sync_once(["VNM"]))
        await asyncio.sleep(0)
        await asyncio.sleep(0)

        skipped = await engine.sync_once(["VNM"])

        provider.gate.set()
        result = await first
        assert skipped is None
        assert result.refreshed == ["VNM"]
        assert len(provider.calls) == 1
        assert engine.status()["skipped_runs"] == 1

    async def test_overlapping_universe_is_skipped(self, engine, provider):
        """A run sharing any symbol with an in-flight run is skipped."""
        provider.gate = asyncio.Event()
        first = asyncio.create_task(engine.sync_once(["VNM"]))
        await asyncio.sleep(0)
        await asyncio.sleep(0)

        skipped = await engine.sync_once(["VNM", "FPT"])

        provider.gate.set()
        await first
        assert skipped is None
        assert provider.calls == [["VNM"]]

    async def test_disjoint_universes_run_concurrently(self, engine, provider):
        provider.gate = asyncio.Event()
        first = asyncio.create_task(engine.sync_once(["VNM"]))
        second = asyncio.create_task(engine.sync_once(["FPT"]))
        for _ in range(5):
            await asyncio.sleep(0)

        provider.gate.set()
        results = await asyncio.gather(first, second)

        assert [r.refreshed for r in results] == [["VNM"], ["FPT"]]
        assert engine.status()["skipped_runs"] == 0

    async def test_fallthrough_fills_cache_from_second_provider(self, cache, store, broadcaster, clock):
        """Primary returns nothing, fallback returns 2 of 3: exactly 2 fresh entries."""
        primary = FakeProvider({})
        primary.name = "primary"
        fallback = FakeProvider({"VNM": 105_000.0, "FPT": 96_000.0})
        fallback.name = "fallback"
        adapter = QuoteSourceAdapter([primary, fallback], sleep=_no_sleep)
        engine = PriceSyncEngine(cache, adapter, store, broadcaster, clock)

        result = await engine.sync_once(["VNM", "FPT", "HPG"])

        assert primary.calls == [["VNM", "FPT", "HPG"]]
        assert fallback.calls == [["VNM", "FPT", "HPG"]]
        assert len(cache) == 2
        assert cache.is_fresh("VNM") and cache.is_fresh("FPT")
        assert not cache.is_fresh("HPG")
        assert result.missing == ["HPG"]
        assert not engine.degraded

    async def test_persist_failure_keeps_cache_and_retries(self, engine, store, cache, clock):
        """Cache still updates when the store is down; the write is retried next cycle."""
        store.fail_writes = True
        result = await engine.sync_once(["VNM"])

        assert result.persist_failures == ["VNM"]
        assert cache.get("VNM") is not None
        assert store.snapshot("VNM") is None
        assert engine.status()["pending_writes"] == 1

        store.fail_writes = False
        clock.advance(seconds=5)
        await engine.sync_once(["VNM"])
        assert store.snapshot("VNM") is not None
        assert engine.status()["pending_writes"] == 0

    async def test_degrades_after_threshold_and_backs_off(self, engine, provider, clock):
        provider.error = RuntimeError("down")
        for _ in range(3):
            await engine.sync_once(["VNM"])

        assert engine.degraded
        assert engine.consecutive_failures == 3
        assert engine.status()["market_data_delayed"] is True

        calls = len(provider.calls)
        assert await engine.sync_once(["VNM"]) is None
        assert len(provider.calls) == calls  # still backing off

        clock.advance(seconds=1)
        await engine.sync_once(["VNM"])
        assert len(provider.calls) == calls + 1

    async def test_recovers_after_success(self, engine, provider, clock):
        provider.error = RuntimeError("down")
        for _ in range(3):
            await engine.sync_once(["VNM"])
        provider.error = None
        clock.advance(seconds=10)

        result = await engine.sync_once(["VNM"])

        assert result.refreshed == ["VNM"]
        assert not engine.degraded
        assert engine.consecutive_failures == 0

    async def test_backoff_is_capped(self, engine, provider, clock):
        provider.error = RuntimeError("down")
        for _ in range(10):
            await engine.sync_once(["VNM"])
            clock.advance(seconds=60)
        await engine.sync_once(["VNM"])
        assert engine.status()["backoff_seconds"] <= 8.0
