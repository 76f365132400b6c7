"""Multi-provider quote fetching with per-provider pacing and fallback."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass

from .interface import QuoteProvider
from .models import PriceSnapshot

logger = logging.getLogger(__name__)


class ProviderThrottle:
    """Enforces a minimum interval between calls to one provider.

    Callers that arrive early wait out the remainder of the interval; calls
    are serialized so two coroutines cannot both slip through.
    """

    def __init__(
        self,
        min_interval: float,
        timer: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.min_interval = min_interval
        self._timer = timer
        self._sleep = sleep
        self._last_call: float | None = None
        self._lock = asyncio.Lock()

    async def wait(self) -> float:
        """Wait until a call is allowed. Returns the seconds waited."""
        async with self._lock:
            waited = 0.0
            if self._last_call is not None:
                remaining = self.min_interval - (self._timer() - self._last_call)
                if remaining > 0:
                    logger.debug("Rate limiting: waiting %.2fs", remaining)
                    await self._sleep(remaining)
                    waited = remaining
            self._last_call = self._timer()
            return waited


@dataclass
class ProviderStats:
    calls: int = 0
    failures: int = 0
    empty_results: int = 0
    snapshots: int = 0
    last_error: str | None = None
    last_success: float | None = None

    def to_dict(self) -> dict:
        return {
            "calls": self.calls,
            "failures": self.failures,
            "empty_results": self.empty_results,
            "snapshots": self.snapshots,
            "last_error": self.last_error,
            "last_success": self.last_success,
        }


class QuoteSourceAdapter:
    """Fetches quotes from an ordered list of providers.

    For each batch the providers are tried in priority order. A provider that
    raises, times out, or yields no usable snapshot hands the *same* batch to
    the next provider. A provider that returns some but not all symbols is
    accepted as-is. Nothing raises past this class: total failure returns an
    empty list.
    """

    def __init__(
        self,
        providers: Iterable[QuoteProvider],
        batch_size: int = 50,
        batch_delay: float = 1.0,
        timeout: float = 10.0,
        timer: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._providers = list(providers)
        if not self._providers:
            raise ValueError("QuoteSourceAdapter needs at least one provider")
        self._batch_size = batch_size
        self._batch_delay = batch_delay
        self._timeout = timeout
        self._timer = timer
        self._sleep = sleep
        self._throttles = {
            p.name: ProviderThrottle(p.min_interval, timer=timer, sleep=sleep) for p in self._providers
        }
        self._stats = {p.name: ProviderStats() for p in self._providers}

    @property
    def providers(self) -> list[QuoteProvider]:
        return list(self._providers)

    async def fetch_many(self, symbols: Iterable[str]) -> list[PriceSnapshot]:
        """Fetch snapshots for `symbols`, batching internally.

        Symbols are upper-cased and de-duplicated. The result holds at most one
        snapshot per requested symbol, and may hold fewer.
        """
        wanted = list(dict.fromkeys(s.strip().upper() for s in symbols if s and s.strip()))
        results: list[PriceSnapshot] = []
        for start in range(0, len(wanted), self._batch_size):
            if start:
                await self._sleep(self._batch_delay)
            batch = wanted[start : start + self._batch_size]
            results.extend(await self._fetch_batch(batch))
        return results

    async def close(self) -> None:
        for provider in self._providers:
            try:
                await provider.close()
            except Exception:
                logger.exception("Error closing provider %s", provider.name)

    def status(self) -> dict:
        return {
            "providers": [p.name for p in self._providers],
            "stats": {name: stats.to_dict() for name, stats in self._stats.items()},
        }

    # --- Internal ---

    async def _fetch_batch(self, batch: list[str]) -> list[PriceSnapshot]:
        for provider in self._providers:
            snapshots = await self._call_provider(provider, batch)
            usable = self._usable(snapshots, batch, provider.name)
            if usable:
                logger.debug("%s: got %d/%d symbols", provider.name, len(usable), len(batch))
                return usable
            self._stats[provider.name].empty_results += 1
            logger.info("%s returned no usable quotes for %d symbols, trying next source", provider.name, len(batch))

        logger.warning("All quote sources failed for batch of %d symbols", len(batch))
        return []

    async def _call_provider(self, provider: QuoteProvider, batch: list[str]) -> list[PriceSnapshot]:
        stats = self._stats[provider.name]
        await self._throttles[provider.name].wait()
        stats.calls += 1
        try:
            return await asyncio.wait_for(
                provider.fetch_quotes(batch),
                timeout=provider.call_timeout(len(batch), self._timeout),
            )
        except asyncio.TimeoutError:
            stats.failures += 1
            stats.last_error = "timeout"
            logger.warning("%s timed out for %d symbols", provider.name, len(batch))
        except Exception as e:
            # Common failures: 401 (bad key), 429 (rate limit), network errors.
            stats.failures += 1
            stats.last_error = str(e)
            logger.warning("%s failed: %s", provider.name, e)
        return []

    def _usable(self, snapshots: list[PriceSnapshot], batch: list[str], provider: str) -> list[PriceSnapshot]:
        requested = set(batch)
        seen: set[str] = set()
        usable = []
        for snap in snapshots or []:
            if snap.symbol not in requested or snap.symbol in seen:
                continue
            if not _has_required_numbers(snap):
                logger.warning("Dropping malformed %s quote for %s", provider, snap.symbol)
                continue
            seen.add(snap.symbol)
            usable.append(snap)
        if usable:
            stats = self._stats[provider]
            stats.snapshots += len(usable)
            stats.last_success = self._timer()
        return usable


def _has_required_numbers(snap: PriceSnapshot) -> bool:
    price, previous_close = snap.current_price, snap.previous_close
    if not isinstance(price, (int, float)) or not isinstance(previous_close, (int, float)):
        return False
    return price > 0 and previous_close >= 0
