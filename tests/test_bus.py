"""Event bus fan-out and backpressure."""

import asyncio

from roundsync.events import EventBus, Topic


def test_topics_are_filtered_per_subscriber():
    bus = EventBus()
    counts = bus.subscribe(Topic.COUNT)
    everything = bus.subscribe()
    assert bus.publish(Topic.COUNT, 1, generation=3) == 2
    assert bus.publish(Topic.BETS, [], generation=3) == 1
    assert [e.payload for e in counts.drain()] == [1]
    events = everything.drain()
    assert [e.topic for e in events] == [Topic.COUNT, Topic.BETS]
    assert events[0].generation == 3


def test_lagging_subscriber_drops_oldest():
    bus = EventBus()
    sub = bus.subscribe(Topic.COUNT, maxsize=2)
    for i in range(5):
        bus.publish(Topic.COUNT, i)
    assert [e.payload for e in sub.drain()] == [3, 4]
    assert sub.dropped == 3


def test_closed_subscription_receives_nothing():
    bus = EventBus()
    sub = bus.subscribe(Topic.ROUND)
    sub.close()
    assert bus.publish(Topic.ROUND, None) == 0


def test_async_get():
    bus = EventBus()

    async def go():
        sub = bus.subscribe(Topic.OUTCOME)
        bus.publish(Topic.OUTCOME, "card")
        return await asyncio.wait_for(sub.get(), timeout=1)

    assert asyncio.run(go()).payload == "card"
