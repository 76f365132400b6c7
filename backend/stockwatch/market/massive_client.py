"""Massive (Polygon.io) API client for real market data."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any

from ..errors import MalformedQuote
from .interface import QuoteProvider
from .models import PriceSnapshot

logger = logging.getLogger(__name__)


class MassiveQuoteProvider(QuoteProvider):
    """QuoteProvider backed by the Massive (Polygon.io) REST API.

    Fetches GET /v2/snapshot/locale/us/markets/stocks/tickers for the whole
    batch in a single API call.

    Rate limits:
      - Free tier: 5 req/min -> one call every 12s (default)
      - Paid tiers: higher limits -> lower min_interval
    """

    name = "massive"

    def __init__(self, api_key: str, min_interval: float = 12.0) -> None:
        self._api_key = api_key
        self.min_interval = min_interval
        self._client: Any = None  # Lazy import to avoid hard dependency at import time

    async def fetch_quotes(self, symbols: list[str]) -> list[PriceSnapshot]:
        if not symbols:
            return []
        # The Massive RESTClient is synchronous - run in a thread to
        # avoid blocking the event loop.
        raw = await asyncio.to_thread(self._fetch_snapshots, symbols)
        snapshots = []
        for snap in raw:
            try:
                snapshots.append(self._parse(snap))
            except MalformedQuote as e:
                logger.warning("Skipping Massive snapshot: %s", e)
        logger.debug("Massive: parsed %d/%d tickers", len(snapshots), len(symbols))
        return snapshots

    async def close(self) -> None:
        self._client = None

    # --- Internal ---

    def _get_client(self) -> Any:
        if self._client is None:
            from massive import RESTClient

            self._client = RESTClient(api_key=self._api_key)
        return self._client

    def _fetch_snapshots(self, symbols: list[str]) -> list:
        """Synchronous call to the Massive REST API. Runs in a thread."""
        from massive.rest.models import SnapshotMarketType

        return self._get_client().get_snapshot_all(
            market_type=SnapshotMarketType.STOCKS,
            tickers=symbols,
        )

    @staticmethod
    def _parse(snap: Any) -> PriceSnapshot:
        ticker = getattr(snap, "ticker", None) or "???"
        try:
            day = snap.day
            last_trade = snap.last_trade
            price = last_trade.price if last_trade and last_trade.price else day.close
            previous_close = snap.prev_day.close
            if not price or price <= 0 or previous_close is None:
                raise MalformedQuote(ticker, "missing price or previous close")
            captured_at = datetime.now(timezone.utc)
            if last_trade and last_trade.timestamp:
                # Massive timestamps are Unix nanoseconds on snapshots
                captured_at = datetime.fromtimestamp(last_trade.timestamp / 1e9, tz=timezone.utc)
            return PriceSnapshot(
                symbol=ticker.upper(),
                current_price=float(price),
                previous_close=float(previous_close),
                day_change=getattr(snap, "todays_change", None),
                day_change_percent=getattr(snap, "todays_change_percent", None),
                volume=day.volume,
                open=day.open,
                high=day.high,
                low=day.low,
                captured_at=captured_at,
                source="massive",
            )
        except (AttributeError, TypeError, ValueError, OverflowError) as e:
            raise MalformedQuote(ticker, str(e)) from e
