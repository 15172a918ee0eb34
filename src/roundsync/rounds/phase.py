"""Round countdown phases and duration formatting."""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime

from roundsync.clock import ensure_utc
from roundsync.models import Round


@dataclass(frozen=True)
class RoundPhase:
    badge: str
    label: str
    seconds: int


def seconds_until(target: datetime | None, now: datetime) -> int:
    if target is None:
        return 0
    return max(0, math.floor((ensure_utc(target) - ensure_utc(now)).total_seconds()))


def format_countdown(sec: float) -> str:
    """MM:SS, or H:MM:SS from one hour up."""
    n = max(0, math.floor(sec))
    if n >= 3600:
        return f"{n // 3600}:{(n % 3600) // 60:02d}:{n % 60:02d}"
    return f"{n // 60:02d}:{n % 60:02d}"


def round_phase(rnd: Round, now: datetime) -> RoundPhase:
    """Presentation phase from the round's timing, independent of its stored status."""
    now = ensure_utc(now)
    if now < rnd.opens_at:
        return RoundPhase("UPCOMING", "Starts in", seconds_until(rnd.opens_at, now))
    if rnd.closes_at is not None and now < rnd.closes_at:
        return RoundPhase("OPEN", "Bets close in", seconds_until(rnd.closes_at, now))
    if now < rnd.ends_at:
        return RoundPhase("LOCKED", "Round ends in", seconds_until(rnd.ends_at, now))
    return RoundPhase("RESOLVING", "Resolving", 0)


def next_round_phase(next_round_at: datetime | None, now: datetime) -> RoundPhase | None:
    """Fallback countdown when no round is selectable."""
    if next_round_at is None:
        return None
    return RoundPhase("NEXT", "Next round in", seconds_until(next_round_at, now))
