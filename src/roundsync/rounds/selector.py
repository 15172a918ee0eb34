"""Round selector - which round is authoritative right now, and when its identity changes."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable

import structlog

from roundsync.clock import ensure_utc
from roundsync.models import Round, RoundStatus

log = structlog.get_logger(__name__)

# Rounds that ended this long ago are forgotten
_RETENTION = timedelta(hours=1)


def select_preferred_round(
    rounds: Iterable[Round],
    now: datetime,
    locked_grace_sec: float = 120.0,
) -> Round | None:
    """
    First match wins:
      1. open and ends_at in the future (latest opens_at)
      2. locked and ended no more than locked_grace_sec ago (latest ends_at), shown as resolving
      3. upcoming (earliest opens_at)
    None when nothing is presentable.
    """
    now = ensure_utc(now)
    rounds = list(rounds)
    open_rounds = [r for r in rounds if r.status is RoundStatus.OPEN and r.ends_at > now]
    if open_rounds:
        return max(open_rounds, key=lambda r: r.opens_at)
    grace_floor = now - timedelta(seconds=locked_grace_sec)
    locked = [r for r in rounds if r.status is RoundStatus.LOCKED and r.ends_at >= grace_floor]
    if locked:
        return max(locked, key=lambda r: r.ends_at)
    upcoming = [r for r in rounds if r.status is RoundStatus.UPCOMING]
    if upcoming:
        return min(upcoming, key=lambda r: r.opens_at)
    return None


@dataclass(frozen=True)
class RoundChange:
    """Result of one selection pass."""

    previous: Round | None
    current: Round | None
    identity_changed: bool
    signature_changed: bool
    generation: int


class RoundSelector:
    """
    Keeps the latest known view of every round (status never regresses for an id) and
    selects the preferred one. Each identity change bumps `generation`, which callers use
    to invalidate per-round work started under an older round.
    """

    def __init__(self, locked_grace_sec: float = 120.0) -> None:
        self.locked_grace_sec = locked_grace_sec
        self._known: dict[str, Round] = {}
        self.current: Round | None = None
        self.generation = 0

    def _merge(self, incoming: Round) -> None:
        known = self._known.get(incoming.id)
        if known is not None and incoming.status.rank < known.status.rank:
            log.debug(
                "round_status_regression_ignored",
                round_id=incoming.id,
                known=known.status.value,
                incoming=incoming.status.value,
            )
            return
        self._known[incoming.id] = incoming

    def observe(self, rounds: Iterable[Round], replace: bool = False) -> None:
        """Merge round updates. replace=True treats the input as the full authoritative set."""
        rounds = list(rounds)
        if replace:
            previous = self._known
            self._known = {}
            for r in rounds:
                if r.id in previous:
                    self._known[r.id] = previous[r.id]
                self._merge(r)
        else:
            for r in rounds:
                self._merge(r)

    def _prune(self, now: datetime) -> None:
        cutoff = now - _RETENTION
        for rid in [rid for rid, r in self._known.items() if r.ends_at < cutoff]:
            del self._known[rid]

    def select_preferred_round(self, now: datetime) -> Round | None:
        return select_preferred_round(self._known.values(), now, self.locked_grace_sec)

    def update(self, now: datetime, rounds: Iterable[Round] = (), replace: bool = False) -> RoundChange:
        """Observe rounds, reselect, and report whether identity or signature changed."""
        now = ensure_utc(now)
        self.observe(rounds, replace=replace)
        self._prune(now)
        previous = self.current
        current = self.select_preferred_round(now)
        prev_id = previous.id if previous else None
        cur_id = current.id if current else None
        identity_changed = prev_id != cur_id
        prev_sig = previous.signature() if previous else None
        cur_sig = current.signature() if current else None
        if identity_changed:
            self.generation += 1
            log.info("round_changed", previous=prev_id, current=cur_id, generation=self.generation)
        self.current = current
        return RoundChange(
            previous=previous,
            current=current,
            identity_changed=identity_changed,
            signature_changed=prev_sig != cur_sig,
            generation=self.generation,
        )

    def known_rounds(self) -> list[Round]:
        return sorted(self._known.values(), key=lambda r: r.opens_at)
