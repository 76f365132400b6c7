"""Market data subsystem.

Public API:
    PriceSnapshot        - Immutable quote dataclass
    PriceCache           - In-memory latest-snapshot store with staleness
    QuoteProvider        - Abstract interface for quote sources
    PriceStore           - Persistence port for stock records
    QuoteSourceAdapter   - Ordered multi-provider fetching with fallback
    PriceSyncEngine      - Scheduled sync cycles
    create_quote_adapter - Factory that selects providers from settings
"""

from .adapter import QuoteSourceAdapter
from .cache import PriceCache
from .factory import create_quote_adapter
from .interface import PriceStore, QuoteProvider
from .models import DailyBar, PriceSnapshot, TechnicalIndicators
from .sync import PriceSyncEngine, SyncResult

__all__ = [
    "DailyBar",
    "PriceCache",
    "PriceSnapshot",
    "PriceStore",
    "PriceSyncEngine",
    "QuoteProvider",
    "QuoteSourceAdapter",
    "SyncResult",
    "TechnicalIndicators",
    "create_quote_adapter",
]
