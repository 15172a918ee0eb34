"""
Typed event bus: one bounded asyncio.Queue per subscriber.

Publishing never blocks the loop. When a subscriber falls behind, its oldest event is
dropped to make room, so backpressure is visible (dropped counter, warning) instead of
stalling producers.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Any, AsyncIterator

import structlog

log = structlog.get_logger(__name__)


class Topic(str, Enum):
    COUNT = "count"  # latest accepted observation
    DISPLAY = "display"  # frame released from the display-delay queue
    ROUND = "round"  # selected round changed
    BETS = "bets"  # ledger contents changed
    OUTCOME = "outcome"  # outcome card shown or cleared
    CONNECTION = "connection"  # push channel up/down
    BALANCE = "balance"  # account balance from the account channel


@dataclass(frozen=True)
class Event:
    topic: Topic
    payload: Any
    # Round generation the event belongs to; 0 when not round-scoped
    generation: int = 0


class Subscription:
    """Receiving end of the bus for a set of topics."""

    def __init__(self, bus: EventBus, topics: frozenset[Topic], maxsize: int) -> None:
        self._bus = bus
        self.topics = topics
        self.queue: asyncio.Queue[Event] = asyncio.Queue(maxsize=maxsize)
        self.dropped = 0
        self.closed = False

    def _offer(self, event: Event) -> None:
        try:
            self.queue.put_nowait(event)
        except asyncio.QueueFull:
            self.queue.get_nowait()
            self.queue.put_nowait(event)
            self.dropped += 1
            if self.dropped == 1 or self.dropped % 100 == 0:
                log.warning("bus_subscriber_lagging", topics=sorted(t.value for t in self.topics), dropped=self.dropped)

    async def get(self) -> Event:
        return await self.queue.get()

    def get_nowait(self) -> Event:
        return self.queue.get_nowait()

    def drain(self) -> list[Event]:
        """Return all queued events without waiting."""
        out = []
        while not self.queue.empty():
            out.append(self.queue.get_nowait())
        return out

    def close(self) -> None:
        self.closed = True
        self._bus._unsubscribe(self)

    async def __aiter__(self) -> AsyncIterator[Event]:
        while not self.closed:
            yield await self.queue.get()


class EventBus:
    """Fan-out of typed events to per-subscriber queues, in publish order."""

    def __init__(self, default_maxsize: int = 256) -> None:
        self.default_maxsize = default_maxsize
        self._subs: list[Subscription] = []

    def subscribe(self, *topics: Topic, maxsize: int | None = None) -> Subscription:
        """Subscribe to the given topics (all topics when none given)."""
        sub = Subscription(self, frozenset(topics or Topic), maxsize or self.default_maxsize)
        self._subs.append(sub)
        return sub

    def _unsubscribe(self, sub: Subscription) -> None:
        if sub in self._subs:
            self._subs.remove(sub)

    def publish(self, topic: Topic, payload: Any, generation: int = 0) -> int:
        """Deliver to every subscriber of topic. Returns number of subscribers reached."""
        event = Event(topic=topic, payload=payload, generation=generation)
        delivered = 0
        for sub in list(self._subs):
            if topic in sub.topics:
                sub._offer(event)
                delivered += 1
        return delivered
