"""Error taxonomy for the sync and alert engine.

None of these escape a scheduled job. They are raised at the edges (provider
clients, store adapters, notification senders) and caught by the component
that owns the recovery policy.
"""

from __future__ import annotations


class StockwatchError(Exception):
    """Base class for all engine errors."""


class ProviderUnavailable(StockwatchError):
    """A quote provider call failed or timed out."""

    def __init__(self, provider: str, reason: str) -> None:
        super().__init__(f"{provider}: {reason}")
        self.provider = provider
        self.reason = reason


class MalformedQuote(StockwatchError):
    """A provider payload for one symbol is missing required numeric fields."""

    def __init__(self, symbol: str, reason: str) -> None:
        super().__init__(f"{symbol}: {reason}")
        self.symbol = symbol
        self.reason = reason


class PersistenceFailure(StockwatchError):
    """A store write failed. The caller retries on its next cycle."""


class NotificationFailure(StockwatchError):
    """A notification channel failed to deliver one message."""

    def __init__(self, channel: str, reason: str) -> None:
        super().__init__(f"{channel}: {reason}")
        self.channel = channel
        self.reason = reason
