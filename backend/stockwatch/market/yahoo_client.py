"""Yahoo Finance chart API client (fallback quote source)."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any

import requests

from ..errors import MalformedQuote, ProviderUnavailable
from .interface import QuoteProvider
from .models import PriceSnapshot

logger = logging.getLogger(__name__)

BASE_URL = "https://query1.finance.yahoo.com"
MAX_TIMEOUT_FACTOR = 3
USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0 Safari/537.36"
)


class YahooQuoteProvider(QuoteProvider):
    """QuoteProvider backed by Yahoo's /v8/finance/chart endpoint.

    The chart endpoint takes one symbol per request, so a batch becomes a
    sequence of calls with a small fixed delay between them. A failure for one
    symbol skips that symbol; only a failure for every symbol is reported as
    ProviderUnavailable.
    """

    name = "yahoo"

    def __init__(
        self,
        symbol_suffix: str = ".VN",
        min_interval: float = 1.0,
        symbol_delay: float = 0.1,
        request_timeout: float = 10.0,
        base_url: str = BASE_URL,
    ) -> None:
        self._suffix = symbol_suffix
        self.min_interval = min_interval
        self._symbol_delay = symbol_delay
        self._request_timeout = request_timeout
        self._base_url = base_url.rstrip("/")
        self._session: requests.Session | None = None

    def call_timeout(self, batch_size: int, base_timeout: float) -> float:
        """Scales with the batch, capped so a slow fallback cannot stall a sync cycle."""
        return min(batch_size * (base_timeout + self._symbol_delay), base_timeout * MAX_TIMEOUT_FACTOR)

    async def fetch_quotes(self, symbols: list[str]) -> list[PriceSnapshot]:
        snapshots: list[PriceSnapshot] = []
        errors = 0
        for i, symbol in enumerate(symbols):
            try:
                payload = await asyncio.to_thread(self._fetch_chart, symbol)
                snapshots.append(self.parse_chart(payload, symbol))
            except MalformedQuote as e:
                logger.warning("Skipping Yahoo quote: %s", e)
            except requests.RequestException as e:
                errors += 1
                logger.warning("Yahoo request for %s failed: %s", symbol, e)
            if i < len(symbols) - 1:
                await asyncio.sleep(self._symbol_delay)

        if symbols and errors == len(symbols):
            raise ProviderUnavailable(self.name, f"all {errors} requests failed")
        return snapshots

    async def close(self) -> None:
        if self._session is not None:
            self._session.close()
            self._session = None

    # --- Internal ---

    def _get_session(self) -> requests.Session:
        if self._session is None:
            self._session = requests.Session()
            self._session.headers.update({"User-Agent": USER_AGENT})
        return self._session

    def _fetch_chart(self, symbol: str) -> Any:
        """Synchronous GET for one symbol. Runs in a thread."""
        url = f"{self._base_url}/v8/finance/chart/{symbol}{self._suffix}"
        resp = self._get_session().get(url, timeout=self._request_timeout)
        resp.raise_for_status()
        return resp.json()

    @staticmethod
    def parse_chart(data: Any, symbol: str) -> PriceSnapshot:
        """Build a snapshot from a chart payload. Raises MalformedQuote."""
        try:
            result = data["chart"]["result"]
            if not result:
                raise MalformedQuote(symbol, "empty chart result")
            meta = result[0]["meta"]
        except (KeyError, IndexError, TypeError) as e:
            raise MalformedQuote(symbol, f"unexpected payload shape ({e})") from e

        price = meta.get("regularMarketPrice")
        previous_close = meta.get("previousClose") or meta.get("chartPreviousClose")
        if not isinstance(price, (int, float)) or price <= 0:
            raise MalformedQuote(symbol, "missing regularMarketPrice")
        if not isinstance(previous_close, (int, float)):
            raise MalformedQuote(symbol, "missing previousClose")

        captured_at = datetime.now(timezone.utc)
        market_time = meta.get("regularMarketTime")
        if isinstance(market_time, (int, float)):
            captured_at = datetime.fromtimestamp(market_time, tz=timezone.utc)

        return PriceSnapshot(
            symbol=symbol,
            current_price=float(price),
            previous_close=float(previous_close),
            volume=meta.get("regularMarketVolume"),
            week52_high=meta.get("fiftyTwoWeekHigh"),
            week52_low=meta.get("fiftyTwoWeekLow"),
            high=meta.get("regularMarketDayHigh"),
            low=meta.get("regularMarketDayLow"),
            captured_at=captured_at,
            source="yahoo",
        )
