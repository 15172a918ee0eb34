"""Outcome notifier - surfaces resolved wagers once, remembers dismissals across restarts."""

from __future__ import annotations

from datetime import datetime
from typing import Callable

import pydantic
import structlog

from roundsync.clock import utcnow
from roundsync.estimator.progress import bet_target
from roundsync.ledger.dismissed import DismissedBets
from roundsync.ledger.merge import BetTransition
from roundsync.models import Bet, OutcomeCard, Round
from roundsync.storage.kv import KeyValueStore

log = structlog.get_logger(__name__)

CARD_KEY = "latest_resolved_card"


def card_for(bet: Bet, rnd: Round | None = None, now: datetime | None = None) -> OutcomeCard:
    return OutcomeCard(
        bet_id=bet.id,
        round_id=bet.round_id,
        won=bet.won,
        payout=bet.payout or 0,
        actual=bet.actual_count,
        target=bet_target(bet, rnd),
        amount=bet.amount,
        resolved_at=bet.resolved_at or now,
    )


class OutcomeNotifier:
    """
    Holds at most one outcome card. A card appears when a wager moves to won or lost and is
    not in the dismissed set; it stays until dismissed or the selected round changes.
    The latest card and the dismissed ids are persisted best-effort in the KV store.
    """

    def __init__(self, store: KeyValueStore, clock: Callable[[], datetime] = utcnow) -> None:
        self._store = store
        self._clock = clock
        self.dismissed = DismissedBets(store)
        self.card: OutcomeCard | None = self._load_card()

    def _load_card(self) -> OutcomeCard | None:
        try:
            raw = self._store.get(CARD_KEY)
        except Exception as e:
            log.warning("outcome_card_load_failed", error=str(e))
            return None
        if not raw:
            return None
        try:
            card = OutcomeCard.model_validate(raw)
        except pydantic.ValidationError as e:
            log.warning("outcome_card_invalid", error=str(e))
            return None
        return None if card.bet_id in self.dismissed else card

    def _save_card(self) -> None:
        try:
            if self.card is None:
                self._store.delete(CARD_KEY)
            else:
                self._store.set(CARD_KEY, self.card.model_dump(mode="json"))
        except Exception as e:
            log.warning("outcome_card_save_failed", error=str(e))

    def on_transition(self, transition: BetTransition, rnd: Round | None = None) -> OutcomeCard | None:
        """Show a card for a newly resolved bet unless it was already dismissed."""
        bet = transition.after
        if not bet.is_terminal or bet.optimistic:
            return None
        if bet.id in self.dismissed:
            return None
        if self.card is not None and self.card.bet_id == bet.id:
            return self.card
        self.card = card_for(bet, rnd, self._clock())
        self._save_card()
        log.info("outcome_card_shown", bet_id=bet.id, won=bet.won, payout=self.card.payout)
        return self.card

    def visible_card(self, current_round_id: str | None) -> OutcomeCard | None:
        """The card to display for the selected round; drops a card from another round."""
        if self.card is None:
            return None
        if self.card.bet_id in self.dismissed or self.card.round_id != current_round_id:
            self.clear()
            return None
        return self.card

    def dismiss(self, bet_id: str) -> bool:
        """Acknowledge a resolved bet. Its card never appears again."""
        self.dismissed.add(bet_id)
        if self.card is not None and self.card.bet_id == bet_id:
            self.clear()
            log.info("outcome_card_dismissed", bet_id=bet_id)
            return True
        return False

    def on_round_change(self, round_id: str | None) -> None:
        if self.card is not None and self.card.round_id != round_id:
            self.clear()

    def clear(self) -> None:
        self.card = None
        self._save_card()
