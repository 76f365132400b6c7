"""In-process publish/subscribe hub backing the SSE endpoint."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Iterable
from dataclasses import dataclass, field
from itertools import count
from typing import Any

from .interface import Broadcaster

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Event:
    topic: str
    payload: dict[str, Any]
    timestamp: float = field(default_factory=time.time)


class Subscription:
    """One client's view of the hub: a bounded queue filtered by topic."""

    def __init__(self, sub_id: int, topics: frozenset[str], maxsize: int) -> None:
        self.id = sub_id
        self.topics = topics
        self.queue: asyncio.Queue[Event] = asyncio.Queue(maxsize=maxsize)
        self.dropped = 0

    def wants(self, topic: str) -> bool:
        return not self.topics or topic in self.topics

    def offer(self, event: Event) -> None:
        """Enqueue without blocking. A full queue drops its oldest event."""
        if self.queue.full():
            try:
                self.queue.get_nowait()
                self.dropped += 1
            except asyncio.QueueEmpty:
                pass
        self.queue.put_nowait(event)

    async def next_event(self, timeout: float | None = None) -> Event | None:
        """Wait for the next event, or return None after `timeout` seconds."""
        try:
            return await asyncio.wait_for(self.queue.get(), timeout=timeout)
        except asyncio.TimeoutError:
            return None


class BroadcastHub(Broadcaster):
    """Fans published events out to subscriber queues.

    A subscription with no topics receives everything. Slow consumers lose
    their oldest events rather than slowing down publishers.
    """

    def __init__(self, queue_size: int = 100) -> None:
        self._queue_size = queue_size
        self._subscribers: dict[int, Subscription] = {}
        self._ids = count(1)
        self._published = 0

    def publish(self, topic: str, payload: dict[str, Any]) -> None:
        event = Event(topic=topic, payload=payload)
        self._published += 1
        for sub in list(self._subscribers.values()):
            if sub.wants(topic):
                sub.offer(event)
        logger.debug("Published %s to %d subscribers", topic, len(self._subscribers))

    def subscribe(self, topics: Iterable[str] = ()) -> Subscription:
        sub = Subscription(next(self._ids), frozenset(topics), self._queue_size)
        self._subscribers[sub.id] = sub
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        self._subscribers.pop(sub.id, None)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    @property
    def published_count(self) -> int:
        return self._published
