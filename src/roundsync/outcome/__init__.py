"""Outcome notification: the card shown when a wager resolves."""

from roundsync.outcome.notifier import OutcomeNotifier

__all__ = ["OutcomeNotifier"]
