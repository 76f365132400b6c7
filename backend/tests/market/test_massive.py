"""Tests for MassiveQuoteProvider (mocked)."""

from types import SimpleNamespace
from unittest.mock import patch

import pytest

from stockwatch.errors import MalformedQuote
from stockwatch.market.massive_client import MassiveQuoteProvider


def _make_snapshot(ticker: str, price: float, prev_close: float, timestamp_ns: int = 1709521200_000_000_000):
    """Create a fake Massive snapshot object."""
    return SimpleNamespace(
        ticker=ticker,
        last_trade=SimpleNamespace(price=price, timestamp=timestamp_ns),
        day=SimpleNamespace(open=prev_close, high=price, low=prev_close, close=price, volume=1_000_000),
        prev_day=SimpleNamespace(close=prev_close),
    )


@pytest.mark.asyncio
class TestMassiveQuoteProvider:
    """Unit tests for MassiveQuoteProvider with mocked API."""

    async def test_fetch_parses_snapshots(self):
        """Test that snapshots are parsed into PriceSnapshots."""
        provider = MassiveQuoteProvider(api_key="test-key")
        raw = [_make_snapshot("VNM", 68_500, 68_000), _make_snapshot("FPT", 125_000, 124_000)]

        with patch.object(provider, "_fetch_snapshots", return_value=raw):
            result = await provider.fetch_quotes(["VNM", "FPT"])

        by_symbol = {s.symbol: s for s in result}
        assert by_symbol["VNM"].current_price == 68_500
        assert by_symbol["VNM"].previous_close == 68_000
        assert by_symbol["VNM"].volume == 1_000_000
        assert by_symbol["FPT"].source == "massive"

    async def test_timestamp_is_nanoseconds(self):
        provider = MassiveQuoteProvider(api_key="test-key")
        raw = [_make_snapshot("VNM", 68_500, 68_000, timestamp_ns=1709521200_000_000_000)]

        with patch.object(provider, "_fetch_snapshots", return_value=raw):
            result = await provider.fetch_quotes(["VNM"])

        assert result[0].captured_at.year == 2024

    async def test_malformed_snapshot_skipped(self):
        """Test that malformed snapshots are skipped gracefully."""
        provider = MassiveQuoteProvider(api_key="test-key")
        good = _make_snapshot("VNM", 68_500, 68_000)
        bad = SimpleNamespace(ticker="BAD", last_trade=None, day=None, prev_day=None)

        with patch.object(provider, "_fetch_snapshots", return_value=[good, bad]):
            result = await provider.fetch_quotes(["VNM", "BAD"])

        assert [s.symbol for s in result] == ["VNM"]

    async def test_falls_back_to_day_close(self):
        """Without a last trade, the day's close is the current price."""
        snap = _make_snapshot("VNM", 68_500, 68_000)
        snap.last_trade = None
        parsed = MassiveQuoteProvider._parse(snap)
        assert parsed.current_price == 68_500

    async def test_missing_previous_close_is_malformed(self):
        snap = _make_snapshot("VNM", 68_500, 68_000)
        snap.prev_day = SimpleNamespace(close=None)
        with pytest.raises(MalformedQuote):
            MassiveQuoteProvider._parse(snap)

    async def test_api_error_propagates(self):
        """Transport errors reach the adapter, which owns the fallback."""
        provider = MassiveQuoteProvider(api_key="test-key")

        with patch.object(provider, "_fetch_snapshots", side_effect=Exception("network error")):
            with pytest.raises(Exception, match="network error"):
                await provider.fetch_quotes(["VNM"])

    async def test_empty_symbols_skip_the_api(self):
        provider = MassiveQuoteProvider(api_key="test-key")
        with patch.object(provider, "_fetch_snapshots") as fetch:
            assert await provider.fetch_quotes([]) == []
        fetch.assert_not_called()

    async def test_default_pacing_is_free_tier(self):
        assert MassiveQuoteProvider(api_key="k").min_interval == 12.0
