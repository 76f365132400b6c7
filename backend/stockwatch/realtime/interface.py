"""Abstract interface for realtime fan-out to browser clients."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class Broadcaster(ABC):
    """Publish small, topic-scoped payloads to connected clients.

    Topics used by the engine:
        prices          - price delta after each sync cycle
        server-status   - activation state transitions
        user-<owner id> - alert-triggered events for one rule owner

    `publish` never blocks and never raises for slow or missing subscribers.
    """

    @abstractmethod
    def publish(self, topic: str, payload: dict[str, Any]) -> None:
        """Deliver `payload` to every subscriber of `topic`."""
