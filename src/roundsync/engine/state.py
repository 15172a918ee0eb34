"""Explicit engine state snapshot handed to the API and CLI."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any

from roundsync.models import Bet, CountFrame, OutcomeCard, Round
from roundsync.rounds.phase import RoundPhase, format_countdown


@dataclass(frozen=True)
class BetView:
    """A ledger entry with its live progress figures."""

    bet: Bet
    progress: int | None = None
    target: int | None = None
    chance: float | None = None
    hint: str | None = None
    band: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "bet": self.bet.model_dump(mode="json"),
            "progress": self.progress,
            "target": self.target,
            "chance": round(self.chance, 1) if self.chance is not None else None,
            "hint": self.hint,
            "band": self.band,
        }


@dataclass(frozen=True)
class EngineState:
    """Everything a view needs, computed at one instant."""

    at: datetime
    generation: int
    round: Round | None = None
    phase: RoundPhase | None = None
    round_baseline: int | None = None
    round_progress: int | None = None
    observation: CountFrame | None = None
    bets: list[BetView] = field(default_factory=list)
    outcome: OutcomeCard | None = None
    connected: bool = False
    next_round_at: datetime | None = None
    balance: int | None = None
    stream: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        phase = None
        if self.phase is not None:
            phase = {**asdict(self.phase), "countdown": format_countdown(self.phase.seconds)}
        return {
            "at": self.at.isoformat(),
            "generation": self.generation,
            "round": self.round.model_dump(mode="json") if self.round else None,
            "phase": phase,
            "round_baseline": self.round_baseline,
            "round_progress": self.round_progress,
            "observation": self.observation.model_dump(mode="json") if self.observation else None,
            "bets": [b.to_dict() for b in self.bets],
            "outcome": self.outcome.model_dump(mode="json") if self.outcome else None,
            "connected": self.connected,
            "next_round_at": self.next_round_at.isoformat() if self.next_round_at else None,
            "balance": self.balance,
            "stream": self.stream,
        }
