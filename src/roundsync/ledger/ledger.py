"""Bet ledger - the user's wagers for the selected round."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Callable

import structlog

from roundsync.clock import utcnow
from roundsync.errors import ReconciliationConflict
from roundsync.ledger.merge import BetTransition, MergeResult, merge_bets
from roundsync.models import Bet, BetDraft, BetPlacement, BetResolution, BetStatus

log = structlog.get_logger(__name__)


def temp_bet_id() -> str:
    return f"temp-{uuid.uuid4().hex[:12]}"


class BetLedger:
    """
    Optimistic entries plus server-confirmed records for one round.

    All changes go through merge_bets or produce new Bet values; nothing mutates a Bet
    in place. Records for other rounds are ignored.
    """

    def __init__(
        self,
        round_id: str | None = None,
        optimistic_grace_sec: float = 5.0,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.round_id = round_id
        self.optimistic_grace_sec = optimistic_grace_sec
        self._clock = clock
        self._bets: list[Bet] = []

    def reset(self, round_id: str | None) -> None:
        """Drop everything, including optimistic entries, and follow a new round."""
        if self._bets:
            log.info("ledger_reset", previous=self.round_id, current=round_id, dropped=len(self._bets))
        self.round_id = round_id
        self._bets = []

    def current(self) -> list[Bet]:
        return list(self._bets)

    def get(self, bet_id: str) -> Bet | None:
        for b in self._bets:
            if b.id == bet_id:
                return b
        return None

    def optimistic(self) -> list[Bet]:
        return [b for b in self._bets if b.optimistic]

    def pending(self) -> list[Bet]:
        return [b for b in self._bets if not b.is_terminal]

    def _replace(self, bet: Bet) -> None:
        self._bets = [bet if b.id == bet.id else b for b in self._bets]

    def submit(
        self,
        draft: BetDraft,
        baseline_count: int | None,
        potential_payout: int | None = None,
        outcome_key: str | None = None,
        now: datetime | None = None,
    ) -> Bet:
        """Create the optimistic entry shown before the server answers."""
        bet = Bet(
            id=temp_bet_id(),
            round_id=draft.round_id,
            bet_type=draft.bet_type,
            status=BetStatus.PENDING,
            amount=draft.amount,
            potential_payout=potential_payout,
            market_id=draft.market_id,
            outcome_key=outcome_key,
            vehicle_class=draft.vehicle_class or None,
            exact_count=draft.exact_count,
            window_duration_sec=draft.window_duration_sec,
            baseline_count=baseline_count,
            placed_at=now or self._clock(),
            optimistic=True,
        )
        if self.round_id is None:
            self.round_id = draft.round_id
        self._bets.append(bet)
        log.info("bet_optimistic", bet_id=bet.id, round_id=bet.round_id, amount=bet.amount)
        return bet

    def acknowledge(self, temp_id: str, placement: BetPlacement) -> Bet | None:
        """Record the placement response on the optimistic entry (id stays temporary)."""
        bet = self.get(temp_id)
        if bet is None or not bet.optimistic:
            return None
        updated = bet.model_copy(
            update={
                "confirmed_id": placement.bet_id,
                "potential_payout": placement.potential_payout
                if placement.potential_payout is not None
                else bet.potential_payout,
                "window_end": placement.window_end or bet.window_end,
            }
        )
        self._replace(updated)
        return updated

    def discard(self, bet_id: str) -> bool:
        """Remove an optimistic entry (rejected or failed submission)."""
        before = len(self._bets)
        self._bets = [b for b in self._bets if not (b.id == bet_id and b.optimistic)]
        return len(self._bets) != before

    def set_baseline(self, bet_id: str, baseline_count: int) -> bool:
        """Fill a confirmed bet's baseline if it has none. Never overwrites."""
        bet = self.get(bet_id)
        if bet is None or bet.baseline_count is not None:
            return False
        self._replace(bet.model_copy(update={"baseline_count": baseline_count}))
        return True

    def reconcile(self, server_bets: list[Bet], now: datetime | None = None) -> MergeResult:
        """Merge one poll of the server's bet list for this round."""
        now = now or self._clock()
        relevant = [b for b in server_bets if self.round_id is None or b.round_id == self.round_id]
        result = merge_bets(self._bets, relevant, now, self.optimistic_grace_sec)
        for temp_id in result.expired:
            conflict = ReconciliationConflict(temp_id, self.round_id or "")
            log.info("bet_optimistic_expired", bet_id=temp_id, round_id=self.round_id, reason=str(conflict))
        for temp_id, confirmed_id in result.absorbed.items():
            log.info("bet_confirmed", temp_id=temp_id, bet_id=confirmed_id)
        for t in result.transitions:
            log.info("bet_resolved", bet_id=t.after.id, status=t.after.status.value)
        self._bets = result.bets
        return result

    def apply_resolution(self, resolution: BetResolution, now: datetime | None = None) -> BetTransition | None:
        """Apply a pushed bet_resolved event. Ignored for unknown or already-terminal bets."""
        bet = self.get(resolution.bet_id)
        if bet is None:
            for b in self._bets:
                if b.optimistic and b.confirmed_id == resolution.bet_id:
                    bet = b
                    break
        if bet is None or bet.is_terminal:
            return None
        resolved = bet.model_copy(
            update={
                "id": resolution.bet_id,
                "status": BetStatus.WON if resolution.won else BetStatus.LOST,
                "payout": resolution.payout,
                "actual_count": resolution.actual,
                "resolved_at": now or self._clock(),
                "optimistic": False,
                "confirmed_id": None,
            }
        )
        self._bets = [resolved if b.id == bet.id else b for b in self._bets]
        log.info("bet_resolved", bet_id=resolved.id, status=resolved.status.value, source="push")
        return BetTransition(before=bet, after=resolved)
