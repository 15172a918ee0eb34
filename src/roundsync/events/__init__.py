"""Typed in-process event bus."""

from roundsync.events.bus import Event, EventBus, Subscription, Topic

__all__ = ["Event", "EventBus", "Subscription", "Topic"]
