"""
Merge-by-id of optimistic and server-confirmed bets.

Pure functions over immutable Bet values, so the rules can be tested without any I/O:

- A confirmed record is keyed by its server id. A later server record for the same id
  replaces it, except that a terminal bet never goes back to pending and the baseline
  recorded at creation is kept.
- An optimistic placeholder (temporary id) is absorbed by the first confirmed record that
  claims it: the id the placement endpoint returned, else a newly seen server bet with the
  same terms, else a newly seen pending bet that is the only pending entry. Its baseline
  carries over when the server record has none.
- A placeholder nobody claims is dropped once the server reports nothing pending for the
  round and the placeholder is older than the grace period.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta

from roundsync.models import Bet


@dataclass(frozen=True)
class BetTransition:
    """A bet leaving pending. before is None when first seen already resolved."""

    before: Bet | None
    after: Bet


@dataclass(frozen=True)
class MergeResult:
    bets: list[Bet]
    transitions: list[BetTransition] = field(default_factory=list)
    # optimistic temp id -> confirmed id
    absorbed: dict[str, str] = field(default_factory=dict)
    expired: list[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.transitions or self.absorbed or self.expired)


def absorb(prev: Bet | None, incoming: Bet) -> Bet:
    """Merge one server record over the local view of the same id."""
    incoming = incoming.model_copy(update={"optimistic": False, "confirmed_id": None})
    if prev is None:
        return incoming
    if prev.is_terminal:
        return prev
    baseline = prev.baseline_count if prev.baseline_count is not None else incoming.baseline_count
    return incoming.model_copy(update={"baseline_count": baseline})


def same_terms(a: Bet, b: Bet) -> bool:
    return (
        a.round_id == b.round_id
        and a.bet_type == b.bet_type
        and a.amount == b.amount
        and a.market_id == b.market_id
        and a.exact_count == b.exact_count
        and (a.vehicle_class or None) == (b.vehicle_class or None)
    )


def _claim(opt: Bet, new_bets: list[Bet], server_pending: list[Bet], taken: set[str]) -> Bet | None:
    for b in new_bets:
        if opt.confirmed_id and b.id == opt.confirmed_id and b.id not in taken:
            return b
    for b in new_bets:
        if b.id not in taken and same_terms(opt, b):
            return b
    new_pending = [b for b in new_bets if not b.is_terminal and b.id not in taken]
    if len(server_pending) == 1 and len(new_pending) == 1:
        return new_pending[0]
    return None


def merge_bets(
    local: list[Bet],
    server: list[Bet],
    now: datetime,
    optimistic_grace_sec: float = 5.0,
) -> MergeResult:
    """Reconcile the local view with one server poll for the same round."""
    confirmed: dict[str, Bet] = {b.id: b for b in local if not b.optimistic}
    known_before = set(confirmed)
    transitions: list[BetTransition] = []

    for sb in server:
        prev = confirmed.get(sb.id)
        merged = absorb(prev, sb)
        if merged.is_terminal and (prev is None or not prev.is_terminal):
            transitions.append(BetTransition(before=prev, after=merged))
        confirmed[sb.id] = merged

    new_bets = [confirmed[b.id] for b in server if b.id not in known_before]
    server_pending = [b for b in server if not b.is_terminal]
    absorbed: dict[str, str] = {}
    expired: list[str] = []
    kept_optimistic: list[Bet] = []
    taken: set[str] = set()

    for opt in (b for b in local if b.optimistic):
        target = _claim(opt, new_bets, server_pending, taken)
        if target is not None:
            taken.add(target.id)
            absorbed[opt.id] = target.id
            if target.baseline_count is None and opt.baseline_count is not None:
                confirmed[target.id] = target.model_copy(update={"baseline_count": opt.baseline_count})
            continue
        if not server_pending and now - opt.placed_at >= timedelta(seconds=optimistic_grace_sec):
            expired.append(opt.id)
            continue
        kept_optimistic.append(opt)

    bets = sorted(confirmed.values(), key=lambda b: b.placed_at) + kept_optimistic
    return MergeResult(bets=bets, transitions=transitions, absorbed=absorbed, expired=expired)
