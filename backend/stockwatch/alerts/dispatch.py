"""Rate-limited, single-consumer queue turning trigger events into state changes and notifications."""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from collections import deque
from datetime import datetime

from ..clock import Clock
from ..realtime.interface import Broadcaster
from .interface import AlertStore, NotificationSender
from .models import AlertRule, Channel, Frequency, TriggerEvent
from .rules import render_message
from .working_set import AlertWorkingSet

logger = logging.getLogger(__name__)

ALERT_EVENT = "alert-triggered"


def user_topic(owner_id: str) -> str:
    return f"user-{owner_id}"


class DispatchQueue:
    """Drains one TriggerEvent per interval.

    The drain rate is a backpressure valve against notification provider
    limits. Events for a rule already waiting in the queue are refused, so a
    rule cannot fire twice before its new trigger state lands.

    Notifications are at-most-once: a failing channel is logged and the
    event is never re-enqueued. The trigger state itself is saved before any
    channel is tried; a failed save is retried at the start of the next drain, and until then
    the working set keeps the triggered copy across reloads.
    """

    def __init__(
        self,
        store: AlertStore,
        working_set: AlertWorkingSet,
        sender: NotificationSender,
        broadcaster: Broadcaster,
        clock: Clock,
        interval: float = 1.0,
        currency: str = "VND",
    ) -> None:
        self._store = store
        self._working_set = working_set
        self._sender = sender
        self._broadcaster = broadcaster
        self._clock = clock
        self._interval = interval
        self._currency = currency

        self._queue: deque[TriggerEvent] = deque()
        self._pending: set[str] = set()
        self._unsaved: dict[str, AlertRule] = {}
        self._task: asyncio.Task | None = None

        self._processed = 0
        self._notifications_sent = 0
        self._notifications_failed = 0
        self._last_processed: datetime | None = None

    # --- Public API ---

    def submit(self, event: TriggerEvent) -> bool:
        """Enqueue an event. Returns False if the rule already has one waiting."""
        if event.rule_id in self._pending:
            return False
        self._pending.add(event.rule_id)
        self._queue.append(event)
        logger.debug("Queued trigger for alert %s (%s)", event.rule_id, event.symbol)
        return True

    def is_pending(self, rule_id: str) -> bool:
        return rule_id in self._pending

    async def start(self) -> None:
        if self._task and not self._task.done():
            return
        self._task = asyncio.create_task(self._run_loop(), name="alert-dispatch")
        logger.info("Alert dispatch started (1 event per %.1fs)", self._interval)

    async def stop(self) -> None:
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
        logger.info("Alert dispatch stopped")

    async def process_next(self) -> bool:
        """Process the oldest queued event. Returns False if the queue was empty."""
        await self._retry_unsaved()
        if not self._queue:
            return False
        event = self._queue.popleft()
        try:
            await self._process(event)
        except Exception:
            logger.exception("Error dispatching alert %s", event.rule_id)
        finally:
            self._pending.discard(event.rule_id)
        return True

    def __len__(self) -> int:
        return len(self._queue)

    def status(self) -> dict:
        return {
            "queued": len(self._queue),
            "processed": self._processed,
            "notifications_sent": self._notifications_sent,
            "notifications_failed": self._notifications_failed,
            "unsaved": len(self._unsaved),
            "running": self._task is not None and not self._task.done(),
            "last_processed": self._last_processed.isoformat() if self._last_processed else None,
        }

    # --- Internal ---

    async def _run_loop(self) -> None:
        while True:
            try:
                await self.process_next()
            except Exception:
                logger.exception("Alert dispatch loop error")
            await self._clock.sleep(self._interval)

    async def _process(self, event: TriggerEvent) -> None:
        rule = self._triggered(event)
        await self._save(rule)

        if rule.settings.disable_after_trigger or rule.settings.frequency == Frequency.ONCE:
            self._working_set.remove(rule.id)
        else:
            self._working_set.replace(rule)

        message = render_message(rule, event.snapshot, self._currency)
        logger.info("Alert %s triggered for %s: %s", rule.id, rule.symbol, message)

        context = {
            "rule_id": rule.id,
            "symbol": rule.symbol,
            "condition": rule.condition,
            "value": rule.value,
            "price": event.snapshot.current_price,
            "priority": rule.priority,
            "triggered_at": event.observed_at.isoformat(),
            "currency": self._currency,
        }
        for channel in self._channels_for(rule):
            try:
                await self._sender.send(channel, rule.owner, message, context)
                self._notifications_sent += 1
            except Exception as e:
                self._notifications_failed += 1
                logger.warning("Sending %s notification for alert %s failed: %s", channel.value, rule.id, e)

        self._publish(rule, event, message)
        self._processed += 1
        self._last_processed = self._clock.now()

    @staticmethod
    def _triggered(event: TriggerEvent) -> AlertRule:
        rule = event.rule
        changes = {
            "triggered": True,
            "triggered_at": event.observed_at,
            "last_triggered": event.observed_at,
            "triggered_price": event.snapshot.current_price,
            "trigger_count": rule.trigger_count + 1,
        }
        if rule.settings.disable_after_trigger:
            changes["is_active"] = False
        return dataclasses.replace(rule, **changes)

    @staticmethod
    def _channels_for(rule: AlertRule) -> list[Channel]:
        owner = rule.owner
        channels = []
        for channel in rule.settings.channels.enabled():
            if channel == Channel.EMAIL and not owner.email_alerts_enabled:
                continue
            if channel == Channel.PUSH and not owner.push_alerts_enabled:
                continue
            channels.append(channel)
        return channels

    async def _save(self, rule: AlertRule) -> None:
        try:
            await self._store.save_alert_state(rule)
        except Exception as e:
            logger.warning("Saving state of alert %s failed, will retry: %s", rule.id, e)
            self._unsaved[rule.id] = rule
            self._working_set.hold(rule)
            return
        self._unsaved.pop(rule.id, None)
        self._working_set.release(rule.id)

    async def _retry_unsaved(self) -> None:
        for rule in list(self._unsaved.values()):
            await self._save(rule)

    def _publish(self, rule: AlertRule, event: TriggerEvent, message: str) -> None:
        payload = {
            "type": ALERT_EVENT,
            "alert_id": rule.id,
            "symbol": rule.symbol,
            "condition": rule.condition,
            "value": rule.value,
            "price": event.snapshot.current_price,
            "message": message,
            "priority": rule.priority,
            "timestamp": event.observed_at.isoformat(),
        }
        try:
            self._broadcaster.publish(user_topic(rule.owner.id), payload)
        except Exception:
            logger.exception("Error publishing alert %s", rule.id)
