"""Abstract interfaces for alert persistence and notification delivery."""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any

from .models import AlertOwner, AlertRule, Channel


class AlertStore(ABC):
    """Persistence port for alert rules. Failed writes raise PersistenceFailure."""

    @abstractmethod
    async def load_eligible_alerts(self, now: datetime) -> list[AlertRule]:
        """All rules with is_active=True whose expiry (if any) is after `now`.

        The store may pre-filter further; the working set re-checks readiness.
        """

    @abstractmethod
    async def save_alert_state(self, rule: AlertRule) -> None:
        """Persist the trigger/activity fields of `rule`."""

    @abstractmethod
    async def deactivate_expired_alerts(self, now: datetime) -> int:
        """Set is_active=False on active rules whose expiry has passed. Returns the count."""


class NotificationSender(ABC):
    """Outbound notification transport.

    Implementations raise on delivery failure; the dispatcher isolates
    failures per channel.
    """

    @abstractmethod
    async def send(
        self,
        channel: Channel,
        recipient: AlertOwner,
        message: str,
        context: dict[str, Any],
    ) -> None:
        """Deliver `message` to `recipient` over `channel`."""
