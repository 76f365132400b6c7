"""Thread-safe in-memory price cache with staleness tracking."""

from __future__ import annotations

import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from threading import Lock

from .models import PriceSnapshot


@dataclass(frozen=True, slots=True)
class CacheEntry:
    snapshot: PriceSnapshot
    inserted_at: float  # monotonic seconds


class PriceCache:
    """Process-wide store of the latest snapshot per symbol.

    Writer: PriceSyncEngine. Readers: AlertEvaluationEngine, status endpoints.

    Entries are replaced wholesale, never patched. Writes build a new mapping
    and swap it in, so a reader holding the result of `get_all()` keeps a
    consistent view while a refresh is in progress.

    The staleness window may be a constant or a callable; the runtime wires it
    to the activation controller so the window shrinks while the market is
    active.
    """

    def __init__(
        self,
        staleness_window: float | Callable[[], float] = 30.0,
        timer: Callable[[], float] = time.monotonic,
    ) -> None:
        self._entries: dict[str, CacheEntry] = {}
        self._lock = Lock()
        self._version: int = 0  # Monotonically increasing; bumped on every write
        self._staleness_window = staleness_window
        self._timer = timer

    @property
    def staleness_window(self) -> float:
        window = self._staleness_window
        return float(window() if callable(window) else window)

    def put(self, symbol: str, snapshot: PriceSnapshot) -> None:
        """Store `snapshot` as the latest for `symbol`."""
        self.put_many({symbol: snapshot})

    def put_many(self, snapshots: dict[str, PriceSnapshot] | Iterable[PriceSnapshot]) -> None:
        """Store several snapshots in one swap."""
        if not isinstance(snapshots, dict):
            snapshots = {s.symbol: s for s in snapshots}
        if not snapshots:
            return
        now = self._timer()
        with self._lock:
            entries = dict(self._entries)
            for symbol, snapshot in snapshots.items():
                entries[symbol] = CacheEntry(snapshot=snapshot, inserted_at=now)
            self._entries = entries
            self._version += 1

    def get(self, symbol: str) -> PriceSnapshot | None:
        """Latest snapshot for a symbol, fresh or not, or None if never cached."""
        entry = self._entries.get(symbol)
        return entry.snapshot if entry else None

    def get_entry(self, symbol: str) -> CacheEntry | None:
        return self._entries.get(symbol)

    def get_all(self) -> dict[str, PriceSnapshot]:
        """Snapshot of all cached prices. Returns a shallow copy."""
        entries = self._entries
        return {symbol: entry.snapshot for symbol, entry in entries.items()}

    def age(self, symbol: str) -> float | None:
        """Seconds since the symbol was last written, or None."""
        entry = self._entries.get(symbol)
        if entry is None:
            return None
        return self._timer() - entry.inserted_at

    def is_fresh(self, symbol: str) -> bool:
        """True iff the symbol was written less than one staleness window ago."""
        age = self.age(symbol)
        return age is not None and age < self.staleness_window

    def stale_symbols(self, symbols: Iterable[str]) -> list[str]:
        """The subset of `symbols` that is absent or stale, in input order."""
        return [s for s in symbols if not self.is_fresh(s)]

    def remove(self, symbol: str) -> None:
        """Drop a symbol from the cache."""
        with self._lock:
            if symbol not in self._entries:
                return
            entries = dict(self._entries)
            del entries[symbol]
            self._entries = entries
            self._version += 1

    @property
    def version(self) -> int:
        """Current version counter. Useful for change detection."""
        return self._version

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, symbol: str) -> bool:
        return symbol in self._entries
