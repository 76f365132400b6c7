"""Factory for building the quote adapter from settings."""

from __future__ import annotations

import logging

from ..config import Settings
from .adapter import QuoteSourceAdapter
from .interface import QuoteProvider

logger = logging.getLogger(__name__)


def create_quote_providers(settings: Settings) -> list[QuoteProvider]:
    """Build the provider list in priority order.

    - STOCKWATCH_SIMULATE set        -> GBM simulator only
    - MASSIVE_API_KEY set            -> Massive first
    - STOCKWATCH_YAHOO_ENABLED (on)  -> Yahoo chart API as fallback
    - Nothing configured             -> GBM simulator
    """
    if settings.simulate:
        from .simulator import SimulatorQuoteProvider

        logger.info("Quote sources: GBM simulator (forced)")
        return [SimulatorQuoteProvider()]

    providers: list[QuoteProvider] = []
    if settings.massive_api_key:
        from .massive_client import MassiveQuoteProvider

        providers.append(
            MassiveQuoteProvider(api_key=settings.massive_api_key, min_interval=settings.massive_min_interval)
        )
    if settings.yahoo_enabled:
        from .yahoo_client import YahooQuoteProvider

        providers.append(
            YahooQuoteProvider(
                symbol_suffix=settings.symbol_suffix,
                min_interval=settings.yahoo_min_interval,
                symbol_delay=settings.yahoo_symbol_delay,
                request_timeout=settings.provider_timeout,
            )
        )
    if not providers:
        from .simulator import SimulatorQuoteProvider

        providers.append(SimulatorQuoteProvider())

    logger.info("Quote sources: %s", " -> ".join(p.name for p in providers))
    return providers


def create_quote_adapter(settings: Settings) -> QuoteSourceAdapter:
    """Create the adapter over `create_quote_providers(settings)`."""
    return QuoteSourceAdapter(
        create_quote_providers(settings),
        batch_size=settings.batch_size,
        batch_delay=settings.batch_delay,
        timeout=settings.provider_timeout,
    )
