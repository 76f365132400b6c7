"""Evaluates the alert working set against cached prices."""

from __future__ import annotations

import logging
from datetime import datetime

from ..clock import Clock
from ..market.cache import PriceCache
from ..market.models import PriceSnapshot
from .dispatch import DispatchQueue
from .models import AlertRule, TriggerEvent
from .rules import is_eligible, matches, render_message
from .working_set import AlertWorkingSet

logger = logging.getLogger(__name__)


class AlertEvaluationEngine:
    """One tick: every working-set rule against its symbol's cached snapshot.

    Rules are skipped silently when their symbol has no cached snapshot, when
    they are no longer eligible (checked again here even though reload
    already filtered), or when an event for them is still waiting in the
    dispatch queue. Matches become TriggerEvents on the queue.
    """

    def __init__(
        self,
        working_set: AlertWorkingSet,
        cache: PriceCache,
        dispatcher: DispatchQueue,
        clock: Clock,
        currency: str = "VND",
    ) -> None:
        self._working_set = working_set
        self._cache = cache
        self._dispatcher = dispatcher
        self._clock = clock
        self._currency = currency
        self._ticks = 0
        self._events_emitted = 0
        self._last_tick: datetime | None = None

    def evaluate_all(self) -> list[TriggerEvent]:
        """Run one evaluation pass. Returns the events submitted to the queue."""
        now = self._clock.now()
        rules = self._working_set.rules()
        events: list[TriggerEvent] = []

        for rule_id, rule in rules.items():
            try:
                snapshot = self._cache.get(rule.symbol)
                if snapshot is None:
                    continue
                if not is_eligible(rule, now):
                    continue
                if self._dispatcher.is_pending(rule_id):
                    continue
                if not matches(rule, snapshot):
                    continue

                event = TriggerEvent(
                    rule_id=rule_id,
                    symbol=rule.symbol,
                    snapshot=snapshot,
                    observed_at=now,
                    rule=rule,
                )
                if self._dispatcher.submit(event):
                    events.append(event)
            except Exception:
                logger.exception("Error checking alert %s", rule_id)

        self._ticks += 1
        self._events_emitted += len(events)
        self._last_tick = now
        if events:
            logger.info("Evaluated %d alerts, %d triggered", len(rules), len(events))
        return events

    def test_rule(self, rule: AlertRule, snapshot: PriceSnapshot | None = None) -> dict:
        """Dry-run one rule without enqueuing anything.

        Uses the cached snapshot for the rule's symbol unless one is given.
        """
        snapshot = snapshot or self._cache.get(rule.symbol)
        condition = rule.condition if rule.value is None else f"{rule.condition} {rule.value}"
        report = {
            "rule_id": rule.id,
            "symbol": rule.symbol,
            "ready": is_eligible(rule, self._clock.now()),
            "would_trigger": False,
            "message": None,
            "condition": condition,
            "snapshot": None,
        }
        if snapshot is not None:
            report["would_trigger"] = matches(rule, snapshot)
            report["message"] = render_message(rule, snapshot, self._currency)
            report["snapshot"] = snapshot.to_dict()
        return report

    def status(self) -> dict:
        return {
            "ticks": self._ticks,
            "events_emitted": self._events_emitted,
            "last_tick": self._last_tick.isoformat() if self._last_tick else None,
        }
