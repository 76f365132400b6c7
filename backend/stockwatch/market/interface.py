"""Abstract interfaces for quote providers and price persistence."""

from __future__ import annotations

from abc import ABC, abstractmethod

from .models import DailyBar, PriceSnapshot


class QuoteProvider(ABC):
    """Contract for one external quote source.

    Providers fetch and parse; they do not cache, persist, or retry. A call
    may raise on transport failure (the adapter falls through to the next
    provider) and may return fewer snapshots than requested. Symbols whose
    payload is missing required numbers must be dropped by the provider, not
    failed for the whole batch.

    Lifecycle:
        provider = YahooQuoteProvider(...)
        snapshots = await provider.fetch_quotes(["VNM", "FPT"])
        await provider.close()
    """

    #: Short identifier used in logs and status output.
    name: str = "provider"

    #: Minimum seconds between two calls to this provider.
    min_interval: float = 0.0

    @abstractmethod
    async def fetch_quotes(self, symbols: list[str]) -> list[PriceSnapshot]:
        """Fetch current quotes for `symbols` (already upper-cased, no duplicates)."""

    def call_timeout(self, batch_size: int, base_timeout: float) -> float:
        """Client-side timeout for one fetch_quotes call over `batch_size` symbols.

        Batched providers use the base timeout. Per-symbol providers override
        this to scale with the batch.
        """
        return base_timeout

    async def close(self) -> None:
        """Release network resources. Safe to call multiple times."""


class PriceStore(ABC):
    """Persistence port for stock records.

    Write failures should raise PersistenceFailure; the sync engine keeps the
    write and retries it on the next cycle.
    """

    @abstractmethod
    async def list_tracked_symbols(self) -> list[str]:
        """Symbols of all active stocks (the sync universe)."""

    @abstractmethod
    async def upsert_price_snapshot(self, symbol: str, snapshot: PriceSnapshot) -> None:
        """Overwrite the latest price fields of a stock record."""

    @abstractmethod
    async def append_price_history_if_new_day(self, symbol: str, bar: DailyBar) -> bool:
        """Append `bar` unless the history already has a row for `bar.date`.

        Returns True if a row was appended.
        """
