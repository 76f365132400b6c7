"""In-memory implementation of the price and alert store ports."""

from __future__ import annotations

import dataclasses
import logging
from collections import deque
from collections.abc import Iterable
from datetime import datetime

from .alerts.interface import AlertStore
from .alerts.models import AlertRule
from .alerts.rules import is_expired
from .market.interface import PriceStore
from .market.models import DailyBar, PriceSnapshot

logger = logging.getLogger(__name__)

HISTORY_LIMIT = 365


class InMemoryStore(PriceStore, AlertStore):
    """Keeps stocks, price history and alert rules in dicts.

    Backs development runs and tests. Price history holds at most one bar per
    day and the last 365 bars per symbol.
    """

    def __init__(self, symbols: Iterable[str] = (), alerts: Iterable[AlertRule] = ()) -> None:
        self._symbols: dict[str, bool] = {s.upper(): True for s in symbols}
        self._snapshots: dict[str, PriceSnapshot] = {}
        self._history: dict[str, deque[DailyBar]] = {}
        self._alerts: dict[str, AlertRule] = {a.id: a for a in alerts}

    # --- Stocks ---

    def track(self, symbol: str) -> None:
        self._symbols[symbol.upper()] = True

    def untrack(self, symbol: str) -> None:
        self._symbols[symbol.upper()] = False

    async def list_tracked_symbols(self) -> list[str]:
        return [s for s, active in self._symbols.items() if active]

    async def upsert_price_snapshot(self, symbol: str, snapshot: PriceSnapshot) -> None:
        symbol = symbol.upper()
        self._snapshots[symbol] = snapshot
        self._symbols.setdefault(symbol, True)

    async def append_price_history_if_new_day(self, symbol: str, bar: DailyBar) -> bool:
        history = self._history.setdefault(symbol.upper(), deque(maxlen=HISTORY_LIMIT))
        if history and history[-1].date == bar.date:
            return False
        history.append(bar)
        return True

    def snapshot(self, symbol: str) -> PriceSnapshot | None:
        return self._snapshots.get(symbol.upper())

    def history(self, symbol: str) -> list[DailyBar]:
        return list(self._history.get(symbol.upper(), ()))

    # --- Alerts ---

    def add_alert(self, rule: AlertRule) -> None:
        self._alerts[rule.id] = rule

    def delete_alert(self, rule_id: str) -> bool:
        return self._alerts.pop(rule_id, None) is not None

    def alert(self, rule_id: str) -> AlertRule | None:
        return self._alerts.get(rule_id)

    def alerts(self) -> list[AlertRule]:
        return list(self._alerts.values())

    async def load_eligible_alerts(self, now: datetime) -> list[AlertRule]:
        return [a for a in self._alerts.values() if a.is_active and not is_expired(a, now)]

    async def save_alert_state(self, rule: AlertRule) -> None:
        current = self._alerts.get(rule.id)
        if current is None:
            logger.warning("Alert %s no longer exists, dropping state update", rule.id)
            return
        self._alerts[rule.id] = dataclasses.replace(
            current,
            is_active=rule.is_active,
            triggered=rule.triggered,
            triggered_at=rule.triggered_at,
            triggered_price=rule.triggered_price,
            trigger_count=rule.trigger_count,
            last_triggered=rule.last_triggered,
        )

    async def deactivate_expired_alerts(self, now: datetime) -> int:
        expired = [a for a in self._alerts.values() if a.is_active and is_expired(a, now)]
        for rule in expired:
            self._alerts[rule.id] = dataclasses.replace(rule, is_active=False)
        if expired:
            logger.info("Deactivated %d expired alerts", len(expired))
        return len(expired)
