"""In-memory mirror of the alert rules that are ready to evaluate."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import datetime
from types import MappingProxyType

from ..clock import Clock
from .interface import AlertStore
from .models import AlertRule
from .rules import is_eligible

logger = logging.getLogger(__name__)


class AlertWorkingSet:
    """Mapping of rule id -> rule, holding only eligible rules.

    Writers build a new mapping and swap it in; readers get an immutable view
    of whichever mapping was current when they asked, so an evaluation pass
    never sees a half-applied reload.

    The dispatcher evicts or replaces rules between reloads. If that happens
    while a reload is awaiting the store, the dispatcher's change wins over
    whatever the (possibly older) store read returned.
    """

    def __init__(self, store: AlertStore, clock: Clock) -> None:
        self._store = store
        self._clock = clock
        self._rules: Mapping[str, AlertRule] = MappingProxyType({})
        self._reloading = False
        self._evicted_during_reload: set[str] = set()
        self._replaced_during_reload: dict[str, AlertRule] = {}
        self._held: dict[str, AlertRule] = {}
        self._last_reload: datetime | None = None
        self._loaded_count = 0

    async def reload(self) -> int:
        """Rebuild from the store. On store failure the previous set is kept.

        Returns the number of rules in the working set afterwards.
        """
        now = self._clock.now()
        self._reloading = True
        self._evicted_during_reload = set()
        self._replaced_during_reload = {}
        try:
            loaded = await self._store.load_eligible_alerts(now)
        except Exception as e:
            logger.warning("Reloading alerts failed, keeping %d cached rules: %s", len(self._rules), e)
            return len(self._rules)
        finally:
            self._reloading = False

        rules: dict[str, AlertRule] = {}
        for rule in loaded:
            rule = self._replaced_during_reload.get(rule.id, self._held.get(rule.id, rule))
            if rule.id in self._evicted_during_reload:
                continue
            if is_eligible(rule, now):
                rules[rule.id] = rule

        self._rules = MappingProxyType(rules)
        self._last_reload = now
        self._loaded_count = len(loaded)
        logger.info("Loaded %d active alerts (%d ready for checking)", len(loaded), len(rules))
        return len(rules)

    def rules(self) -> Mapping[str, AlertRule]:
        """The current mapping (read-only)."""
        return self._rules

    def get(self, rule_id: str) -> AlertRule | None:
        return self._rules.get(rule_id)

    def symbols(self) -> set[str]:
        return {rule.symbol for rule in self._rules.values()}

    def remove(self, rule_id: str) -> bool:
        """Evict a rule now, without waiting for the next reload."""
        if self._reloading:
            self._evicted_during_reload.add(rule_id)
            self._replaced_during_reload.pop(rule_id, None)
        if rule_id not in self._rules:
            return False
        rules = dict(self._rules)
        del rules[rule_id]
        self._rules = MappingProxyType(rules)
        return True

    def replace(self, rule: AlertRule) -> None:
        """Swap in an updated copy of a rule that is still tracked."""
        if self._reloading:
            self._replaced_during_reload[rule.id] = rule
        if rule.id not in self._rules:
            return
        rules = dict(self._rules)
        rules[rule.id] = rule
        self._rules = MappingProxyType(rules)

    def hold(self, rule: AlertRule) -> None:
        """Prefer `rule` over the store's copy on reload until `release` is called.

        Used for trigger state the store has not accepted yet, so a reload
        cannot resurrect the pre-trigger rule.
        """
        self._held[rule.id] = rule

    def release(self, rule_id: str) -> None:
        self._held.pop(rule_id, None)

    def prune(self, now: datetime | None = None) -> int:
        """Drop rules that are no longer eligible. Returns the number dropped."""
        now = now or self._clock.now()
        keep = {rid: rule for rid, rule in self._rules.items() if is_eligible(rule, now)}
        dropped = len(self._rules) - len(keep)
        if dropped:
            self._rules = MappingProxyType(keep)
            logger.info("Pruned %d ineligible alerts", dropped)
        return dropped

    def status(self) -> dict:
        return {
            "size": len(self._rules),
            "loaded": self._loaded_count,
            "held": len(self._held),
            "last_reload": self._last_reload.isoformat() if self._last_reload else None,
        }

    def __len__(self) -> int:
        return len(self._rules)

    def __contains__(self, rule_id: str) -> bool:
        return rule_id in self._rules
