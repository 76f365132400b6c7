"""Tests for PriceSnapshot and friends."""

from datetime import date

import pytest

from stockwatch.market.models import PriceSnapshot, TechnicalIndicators


class TestPriceSnapshot:
    """Unit tests for the PriceSnapshot model."""

    def test_creation(self):
        """Test basic PriceSnapshot creation."""
        snap = PriceSnapshot(symbol="VNM", current_price=68_500, previous_close=68_000)
        assert snap.symbol == "VNM"
        assert snap.current_price == 68_500
        assert snap.previous_close == 68_000
        assert snap.volume is None
        assert snap.technical is None

    def test_derived_fields(self):
        """Test day change and percent are derived from the previous close."""
        snap = PriceSnapshot(symbol="VNM", current_price=105_000, previous_close=100_000).with_derived_fields()
        assert snap.day_change == 5_000
        assert snap.day_change_percent == 5.0

    def test_derived_fields_negative(self):
        """Test a negative day change."""
        snap = PriceSnapshot(symbol="VNM", current_price=96_000, previous_close=100_000).with_derived_fields()
        assert snap.day_change == -4_000
        assert snap.day_change_percent == -4.0

    def test_derived_fields_zero_previous_close(self):
        """Test percent change with zero previous close."""
        snap = PriceSnapshot(symbol="NEW", current_price=10_000, previous_close=0).with_derived_fields()
        assert snap.day_change_percent == 0.0

    def test_provider_fields_are_kept(self):
        """Provider-reported change fields are not recomputed."""
        snap = PriceSnapshot(
            symbol="VNM", current_price=105_000, previous_close=100_000, day_change=1.0, day_change_percent=2.0
        )
        assert snap.with_derived_fields() is snap

    def test_direction(self):
        """Test direction against the previous close."""
        assert PriceSnapshot(symbol="A", current_price=11, previous_close=10).direction == "up"
        assert PriceSnapshot(symbol="A", current_price=9, previous_close=10).direction == "down"
        assert PriceSnapshot(symbol="A", current_price=10, previous_close=10).direction == "flat"

    def test_daily_bar_fills_missing_ohlc(self):
        """Missing OHLC falls back to previous close and current price."""
        snap = PriceSnapshot(symbol="VNM", current_price=70_000, previous_close=68_000, volume=1_200)
        bar = snap.daily_bar(date(2024, 3, 4))
        assert bar.date == date(2024, 3, 4)
        assert bar.open == 68_000
        assert bar.high == 70_000
        assert bar.low == 70_000
        assert bar.close == 70_000
        assert bar.volume == 1_200

    def test_daily_bar_uses_reported_ohlc(self):
        snap = PriceSnapshot(
            symbol="VNM", current_price=70_000, previous_close=68_000, open=68_500, high=71_000, low=68_100
        )
        bar = snap.daily_bar(date(2024, 3, 4))
        assert (bar.open, bar.high, bar.low) == (68_500, 71_000, 68_100)
        assert bar.volume == 0

    def test_to_dict(self):
        """Test serialization to dictionary."""
        snap = PriceSnapshot(
            symbol="VNM",
            current_price=68_500,
            previous_close=68_000,
            technical=TechnicalIndicators(rsi=55.0),
            source="yahoo",
        )
        result = snap.to_dict()

        assert result["symbol"] == "VNM"
        assert result["current_price"] == 68_500
        assert result["previous_close"] == 68_000
        assert result["technical"]["rsi"] == 55.0
        assert result["source"] == "yahoo"
        assert result["direction"] == "up"
        assert isinstance(result["captured_at"], str)

    def test_immutability(self):
        """Test that PriceSnapshot is immutable."""
        snap = PriceSnapshot(symbol="VNM", current_price=68_500, previous_close=68_000)

        with pytest.raises(AttributeError):
            snap.current_price = 70_000
