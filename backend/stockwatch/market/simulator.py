"""GBM-based quote simulator for development without a data subscription."""

from __future__ import annotations

import logging
import math
import random
from datetime import datetime, timezone

import numpy as np

from .interface import QuoteProvider
from .models import PriceSnapshot, TechnicalIndicators
from .seed_prices import (
    AVERAGE_VOLUMES,
    CORRELATION_GROUPS,
    CROSS_GROUP_CORR,
    DEFAULT_AVERAGE_VOLUME,
    DEFAULT_PARAMS,
    INTRA_BANK_CORR,
    INTRA_CONSUMER_CORR,
    SEED_PRICES,
    TICKER_PARAMS,
    VIC_CORR,
)

logger = logging.getLogger(__name__)


class GBMSimulator:
    """Geometric Brownian Motion simulator for correlated stock prices.

    Math:
        S(t+dt) = S(t) * exp((mu - sigma^2/2) * dt + sigma * sqrt(dt) * Z)

    Where:
        S(t)   = current price
        mu     = annualized drift (expected return)
        sigma  = annualized volatility
        dt     = time step as fraction of a trading year
        Z      = correlated standard normal random variable

    One step corresponds to one fetch at the active sync cadence (5s).
    """

    # 252 trading days * 4.5 hours/day * 3600 seconds/hour
    TRADING_SECONDS_PER_YEAR = 252 * 4.5 * 3600  # 4,082,400
    DEFAULT_DT = 5.0 / TRADING_SECONDS_PER_YEAR  # ~1.22e-6

    def __init__(
        self,
        tickers: list[str],
        dt: float = DEFAULT_DT,
        event_probability: float = 0.001,
    ) -> None:
        self._dt = dt
        self._event_prob = event_probability

        # Per-ticker state
        self._tickers: list[str] = []
        self._prices: dict[str, float] = {}
        self._reference: dict[str, float] = {}
        self._params: dict[str, dict[str, float]] = {}

        # Cholesky decomposition of the correlation matrix (for correlated moves)
        self._cholesky: np.ndarray | None = None

        for ticker in tickers:
            self._add_ticker_internal(ticker)
        self._rebuild_cholesky()

    # --- Public API ---

    def step(self) -> dict[str, float]:
        """Advance all tickers by one time step. Returns {ticker: new_price}."""
        n = len(self._tickers)
        if n == 0:
            return {}

        z_independent = np.random.standard_normal(n)
        if self._cholesky is not None:
            z_correlated = self._cholesky @ z_independent
        else:
            z_correlated = z_independent

        result: dict[str, float] = {}
        for i, ticker in enumerate(self._tickers):
            params = self._params[ticker]
            mu = params["mu"]
            sigma = params["sigma"]

            drift = (mu - 0.5 * sigma**2) * self._dt
            diffusion = sigma * math.sqrt(self._dt) * z_correlated[i]
            self._prices[ticker] *= math.exp(drift + diffusion)

            # Random news event: occasional 2-5% jump
            if random.random() < self._event_prob:
                shock_magnitude = random.uniform(0.02, 0.05)
                shock_sign = random.choice([-1, 1])
                self._prices[ticker] *= 1 + shock_magnitude * shock_sign
                logger.debug(
                    "Random event on %s: %.1f%% %s",
                    ticker,
                    shock_magnitude * 100,
                    "up" if shock_sign > 0 else "down",
                )

            result[ticker] = round(self._prices[ticker])

        return result

    def add_tickers(self, tickers: list[str]) -> None:
        """Add several tickers, rebuilding the correlation matrix once."""
        added = [t for t in tickers if t not in self._prices]
        for ticker in added:
            self._add_ticker_internal(ticker)
        if added:
            self._rebuild_cholesky()

    def add_ticker(self, ticker: str) -> None:
        self.add_tickers([ticker])

    def remove_ticker(self, ticker: str) -> None:
        """Remove a ticker from the simulation. Rebuilds the correlation matrix."""
        if ticker not in self._prices:
            return
        self._tickers.remove(ticker)
        del self._prices[ticker]
        del self._reference[ticker]
        del self._params[ticker]
        self._rebuild_cholesky()

    def get_price(self, ticker: str) -> float | None:
        """Current price for a ticker, or None if not tracked."""
        return self._prices.get(ticker)

    def reference_price(self, ticker: str) -> float | None:
        """Price at which the ticker entered the simulation (its 'previous close')."""
        return self._reference.get(ticker)

    @property
    def tickers(self) -> list[str]:
        return list(self._tickers)

    # --- Internals ---

    def _add_ticker_internal(self, ticker: str) -> None:
        """Add a ticker without rebuilding Cholesky (for batch initialization)."""
        if ticker in self._prices:
            return
        self._tickers.append(ticker)
        start = SEED_PRICES.get(ticker, random.uniform(10_000, 150_000))
        self._prices[ticker] = start
        self._reference[ticker] = start
        self._params[ticker] = TICKER_PARAMS.get(ticker, dict(DEFAULT_PARAMS))

    def _rebuild_cholesky(self) -> None:
        """Rebuild the Cholesky decomposition of the ticker correlation matrix."""
        n = len(self._tickers)
        if n <= 1:
            self._cholesky = None
            return

        corr = np.eye(n)
        for i in range(n):
            for j in range(i + 1, n):
                rho = self._pairwise_correlation(self._tickers[i], self._tickers[j])
                corr[i, j] = rho
                corr[j, i] = rho

        self._cholesky = np.linalg.cholesky(corr)

    @staticmethod
    def _pairwise_correlation(t1: str, t2: str) -> float:
        """Correlation between two tickers based on sector grouping.

        Correlation structure:
          - Same bank/broker group: 0.6
          - Same consumer group:    0.5
          - VIC with anything:      0.2
          - Cross-sector / unknown: 0.3
        """
        banks = CORRELATION_GROUPS["banks"]
        consumer = CORRELATION_GROUPS["consumer"]

        if t1 == "VIC" or t2 == "VIC":
            return VIC_CORR

        if t1 in banks and t2 in banks:
            return INTRA_BANK_CORR
        if t1 in consumer and t2 in consumer:
            return INTRA_CONSUMER_CORR

        return CROSS_GROUP_CORR


class SimulatorQuoteProvider(QuoteProvider):
    """QuoteProvider that answers every request from the GBM simulator.

    Unknown symbols join the simulation on first request. Volume accumulates
    across calls around each ticker's typical daily volume; 52-week bounds
    start 20% either side of the seed price and widen as prices wander.
    """

    name = "simulator"

    def __init__(self, event_probability: float = 0.001, min_interval: float = 0.0) -> None:
        self.min_interval = min_interval
        self._sim = GBMSimulator(tickers=[], event_probability=event_probability)
        self._volumes: dict[str, float] = {}
        self._ranges: dict[str, tuple[float, float]] = {}

    @property
    def simulator(self) -> GBMSimulator:
        return self._sim

    async def fetch_quotes(self, symbols: list[str]) -> list[PriceSnapshot]:
        self._sim.add_tickers(symbols)
        prices = self._sim.step()
        now = datetime.now(timezone.utc)
        return [self._snapshot(symbol, prices[symbol], now) for symbol in symbols if symbol in prices]

    def _snapshot(self, symbol: str, price: float, now: datetime) -> PriceSnapshot:
        reference = self._sim.reference_price(symbol) or price
        average_volume = AVERAGE_VOLUMES.get(symbol, DEFAULT_AVERAGE_VOLUME)

        volume = self._volumes.get(symbol, 0.0) + float(np.random.exponential(average_volume / 900))
        self._volumes[symbol] = volume

        low, high = self._ranges.get(symbol, (reference * 0.8, reference * 1.2))
        low, high = min(low, price), max(high, price)
        self._ranges[symbol] = (low, high)

        return PriceSnapshot(
            symbol=symbol,
            current_price=price,
            previous_close=reference,
            volume=round(volume),
            average_volume=average_volume,
            week52_high=round(high),
            week52_low=round(low),
            technical=TechnicalIndicators(rsi=self._pseudo_rsi(price, reference)),
            captured_at=now,
            source=self.name,
        )

    @staticmethod
    def _pseudo_rsi(price: float, reference: float) -> float:
        """Map the move from the reference price onto 0-100, saturating at +-7%."""
        move = (price - reference) / reference if reference else 0.0
        return round(50 + max(-1.0, min(1.0, move / 0.07)) * 50, 1)
