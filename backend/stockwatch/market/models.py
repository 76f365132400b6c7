"""Data models for market data."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date, datetime, timezone


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, slots=True)
class TechnicalIndicators:
    """Latest technical indicator readings for a symbol. Any may be absent."""

    rsi: float | None = None
    macd: float | None = None
    sma_20: float | None = None
    sma_50: float | None = None

    def to_dict(self) -> dict:
        return {"rsi": self.rsi, "macd": self.macd, "sma_20": self.sma_20, "sma_50": self.sma_50}


@dataclass(frozen=True, slots=True)
class DailyBar:
    """One OHLCV row of price history."""

    date: date
    open: float
    high: float
    low: float
    close: float
    volume: float


@dataclass(frozen=True, slots=True)
class PriceSnapshot:
    """Immutable point-in-time quote for one symbol.

    `previous_close` is the prior trading day's close as reported by the
    provider. It is never replaced with an intraday price, so percent-change
    rules always measure against the last session.
    """

    symbol: str
    current_price: float
    previous_close: float
    day_change: float | None = None
    day_change_percent: float | None = None
    volume: float | None = None
    average_volume: float | None = None
    week52_high: float | None = None
    week52_low: float | None = None
    open: float | None = None
    high: float | None = None
    low: float | None = None
    technical: TechnicalIndicators | None = None
    captured_at: datetime = field(default_factory=_utcnow)
    source: str = ""

    @property
    def direction(self) -> str:
        """'up', 'down', or 'flat' against the previous close."""
        if self.current_price > self.previous_close:
            return "up"
        elif self.current_price < self.previous_close:
            return "down"
        return "flat"

    def with_derived_fields(self) -> PriceSnapshot:
        """Return a copy with day_change / day_change_percent filled in if missing.

        A zero previous close yields a 0.0 percent change instead of dividing.
        """
        if self.day_change is not None and self.day_change_percent is not None:
            return self
        change = self.day_change
        if change is None:
            change = round(self.current_price - self.previous_close, 4)
        percent = self.day_change_percent
        if percent is None:
            percent = 0.0 if self.previous_close == 0 else round(change / self.previous_close * 100, 4)
        return replace(self, day_change=change, day_change_percent=percent)

    def daily_bar(self, day: date) -> DailyBar:
        """History row for `day`, falling back to the close/current price for missing OHLC."""
        return DailyBar(
            date=day,
            open=self.open if self.open is not None else self.previous_close,
            high=self.high if self.high is not None else self.current_price,
            low=self.low if self.low is not None else self.current_price,
            close=self.current_price,
            volume=self.volume or 0,
        )

    def to_dict(self) -> dict:
        """Serialize for JSON transmission and persistence."""
        return {
            "symbol": self.symbol,
            "current_price": self.current_price,
            "previous_close": self.previous_close,
            "day_change": self.day_change,
            "day_change_percent": self.day_change_percent,
            "volume": self.volume,
            "average_volume": self.average_volume,
            "week52_high": self.week52_high,
            "week52_low": self.week52_low,
            "open": self.open,
            "high": self.high,
            "low": self.low,
            "technical": self.technical.to_dict() if self.technical else None,
            "captured_at": self.captured_at.isoformat(),
            "source": self.source,
            "direction": self.direction,
        }
