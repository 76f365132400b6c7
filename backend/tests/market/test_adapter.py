"""Tests for QuoteSourceAdapter and ProviderThrottle."""

import asyncio

import pytest

from stockwatch.market.adapter import ProviderThrottle, QuoteSourceAdapter
from stockwatch.market.interface import QuoteProvider
from stockwatch.market.models import PriceSnapshot


def _snap(symbol: str, price: float = 100.0, previous_close: float = 100.0) -> PriceSnapshot:
    return PriceSnapshot(symbol=symbol, current_price=price, previous_close=previous_close)


class FakeProvider(QuoteProvider):
    """Returns canned snapshots for the symbols it knows about."""

    def __init__(self, name, prices=None, error=None, delay=0.0):
        self.name = name
        self.min_interval = 0.0
        self.prices = prices or {}
        self.error = error
        self.delay = delay
        self.calls = []

    async def fetch_quotes(self, symbols):
        self.calls.append(list(symbols))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return [_snap(s, self.prices[s]) for s in symbols if s in self.prices]


async def _no_sleep(seconds):
    return None


@pytest.mark.asyncio
class TestQuoteSourceAdapter:
    """Unit tests for provider ordering and fallthrough."""

    async def test_first_provider_wins(self):
        """Test that the primary provider's results are used when usable."""
        a = FakeProvider("a", {"VNM": 1.0, "FPT": 2.0})
        b = FakeProvider("b", {"VNM": 9.0, "FPT": 9.0})
        adapter = QuoteSourceAdapter([a, b], sleep=_no_sleep)

        result = await adapter.fetch_many(["VNM", "FPT"])

        assert {s.symbol: s.current_price for s in result} == {"VNM": 1.0, "FPT": 2.0}
        assert b.calls == []

    async def test_empty_result_falls_through(self):
        """A returns nothing, B returns 2 of 3: exactly those 2 come back."""
        a = FakeProvider("a", {})
        b = FakeProvider("b", {"VNM": 68_000, "FPT": 125_000})
        adapter = QuoteSourceAdapter([a, b], sleep=_no_sleep)

        result = await adapter.fetch_many(["VNM", "FPT", "HPG"])

        assert sorted(s.symbol for s in result) == ["FPT", "VNM"]
        assert b.calls == [["VNM", "FPT", "HPG"]]

    async def test_error_falls_through(self):
        """Test that a raising provider hands the batch to the next one."""
        a = FakeProvider("a", error=RuntimeError("429 Too Many Requests"))
        b = FakeProvider("b", {"VNM": 68_000})
        adapter = QuoteSourceAdapter([a, b], sleep=_no_sleep)

        result = await adapter.fetch_many(["VNM"])

        assert [s.symbol for s in result] == ["VNM"]
        stats = adapter.status()["stats"]
        assert stats["a"]["failures"] == 1
        assert "429" in stats["a"]["last_error"]

    async def test_timeout_falls_through(self):
        """Test that a slow provider is abandoned after the timeout."""
        a = FakeProvider("a", {"VNM": 1.0}, delay=1.0)
        b = FakeProvider("b", {"VNM": 2.0})
        adapter = QuoteSourceAdapter([a, b], timeout=0.01, sleep=_no_sleep)

        result = await adapter.fetch_many(["VNM"])

        assert [s.current_price for s in result] == [2.0]
        assert adapter.status()["stats"]["a"]["last_error"] == "timeout"

    async def test_all_fail_returns_empty(self):
        """Test that total failure returns an empty list instead of raising."""
        a = FakeProvider("a", error=RuntimeError("down"))
        b = FakeProvider("b", {})
        adapter = QuoteSourceAdapter([a, b], sleep=_no_sleep)

        assert await adapter.fetch_many(["VNM"]) == []

    async def test_partial_result_is_accepted(self):
        """Test that a partial answer does not trigger the fallback."""
        a = FakeProvider("a", {"VNM": 1.0})
        b = FakeProvider("b", {"VNM": 2.0, "FPT": 2.0})
        adapter = QuoteSourceAdapter([a, b], sleep=_no_sleep)

        result = await adapter.fetch_many(["VNM", "FPT"])

        assert [s.symbol for s in result] == ["VNM"]
        assert b.calls == []

    async def test_malformed_and_unrequested_dropped(self):
        """Non-positive prices and symbols nobody asked for are discarded."""

        class Messy(FakeProvider):
            async def fetch_quotes(self, symbols):
                return [_snap("VNM", 0.0), _snap("XYZ", 5.0), _snap("FPT", 10.0), _snap("FPT", 11.0)]

        adapter = QuoteSourceAdapter([Messy("m")], sleep=_no_sleep)

        result = await adapter.fetch_many(["VNM", "FPT"])

        assert [(s.symbol, s.current_price) for s in result] == [("FPT", 10.0)]

    async def test_symbols_normalized_and_batched(self):
        """Symbols are upper-cased, de-duplicated and split into batches."""
        a = FakeProvider("a", {s: 1.0 for s in ["VNM", "FPT", "HPG"]})
        slept = []

        async def record_sleep(seconds):
            slept.append(seconds)

        adapter = QuoteSourceAdapter([a], batch_size=2, batch_delay=1.5, sleep=record_sleep)

        result = await adapter.fetch_many(["vnm", " FPT ", "VNM", "hpg", ""])

        assert a.calls == [["VNM", "FPT"], ["HPG"]]
        assert len(result) == 3
        assert slept == [1.5]

    async def test_requires_a_provider(self):
        with pytest.raises(ValueError):
            QuoteSourceAdapter([])

    async def test_close_closes_providers(self):
        """Closing the adapter closes every provider, even if one fails."""
        closed = []

        class Closing(FakeProvider):
            async def close(self):
                closed.append(self.name)
                if self.name == "a":
                    raise RuntimeError("boom")

        adapter = QuoteSourceAdapter([Closing("a"), Closing("b")])
        await adapter.close()
        assert closed == ["a", "b"]


@pytest.mark.asyncio
class TestProviderThrottle:
    """Unit tests for per-provider pacing."""

    async def test_first_call_does_not_wait(self):
        slept = []

        async def record_sleep(seconds):
            slept.append(seconds)

        throttle = ProviderThrottle(12.0, timer=lambda: 100.0, sleep=record_sleep)
        assert await throttle.wait() == 0.0
        assert slept == []

    async def test_waits_out_the_interval(self):
        """A second call 2s after the first waits the remaining 10s."""
        now = {"t": 100.0}
        slept = []

        async def record_sleep(seconds):
            slept.append(seconds)
            now["t"] += seconds

        throttle = ProviderThrottle(12.0, timer=lambda: now["t"], sleep=record_sleep)
        await throttle.wait()
        now["t"] += 2.0
        waited = await throttle.wait()

        assert waited == pytest.approx(10.0)
        assert slept == [pytest.approx(10.0)]

    async def test_no_wait_after_interval(self):
        now = {"t": 100.0}
        throttle = ProviderThrottle(1.0, timer=lambda: now["t"], sleep=_no_sleep)
        await throttle.wait()
        now["t"] += 5.0
        assert await throttle.wait() == 0.0
