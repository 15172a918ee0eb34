"""Bet, BetDraft, OutcomeCard - wagers and their resolution."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

from roundsync.clock import ensure_utc


class BetStatus(str, Enum):
    PENDING = "pending"
    WON = "won"
    LOST = "lost"

    @property
    def is_terminal(self) -> bool:
        return self is not BetStatus.PENDING


class BetType(str, Enum):
    MARKET = "market"
    EXACT_COUNT = "exact_count"


def _utc_or_none(v: datetime | None) -> datetime | None:
    return ensure_utc(v) if v is not None else None


class Bet(BaseModel):
    """A user's wager. Frozen: state changes produce a new instance via model_copy.

    baseline_count is set once when the entry is created (optimistically or on first
    confirmation) and carried unchanged through every later merge.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    round_id: str
    bet_type: BetType = BetType.MARKET
    status: BetStatus = BetStatus.PENDING
    amount: int = Field(..., gt=0)
    potential_payout: int | None = None
    market_id: str | None = None
    outcome_key: str | None = None
    vehicle_class: str | None = None
    exact_count: int | None = Field(None, ge=0)
    window_duration_sec: int | None = None
    window_end: datetime | None = None
    baseline_count: int | None = None
    placed_at: datetime
    resolved_at: datetime | None = None
    actual_count: int | None = None
    payout: int | None = None
    # True while this is a client placeholder with a temporary id
    optimistic: bool = False
    # Server id reported by the placement endpoint, before the bet shows up in a poll
    confirmed_id: str | None = None

    @field_validator("placed_at", "window_end", "resolved_at")
    @classmethod
    def _utc(cls, v: datetime | None) -> datetime | None:
        return _utc_or_none(v)

    @field_validator("status", "bet_type", mode="before")
    @classmethod
    def _lower(cls, v):
        return v.lower() if isinstance(v, str) else v

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def won(self) -> bool:
        return self.status is BetStatus.WON


class BetDraft(BaseModel):
    """Client-side wager before submission: market bet or exact-count bet."""

    round_id: str
    amount: int
    market_id: str | None = None
    vehicle_class: str | None = None
    exact_count: int | None = None
    window_duration_sec: int | None = None

    @property
    def bet_type(self) -> BetType:
        return BetType.MARKET if self.market_id else BetType.EXACT_COUNT

    def to_payload(self) -> dict:
        """Request body for the bet placement endpoint."""
        if self.bet_type is BetType.MARKET:
            return {"round_id": self.round_id, "market_id": self.market_id, "amount": self.amount}
        return {
            "round_id": self.round_id,
            "window_duration_sec": self.window_duration_sec,
            "vehicle_class": self.vehicle_class or None,
            "exact_count": self.exact_count,
            "amount": self.amount,
        }


class BetPlacement(BaseModel):
    """Bet placement endpoint response."""

    bet_id: str
    potential_payout: int | None = None
    window_end: datetime | None = None

    @field_validator("window_end")
    @classmethod
    def _utc(cls, v: datetime | None) -> datetime | None:
        return _utc_or_none(v)


class BetResolution(BaseModel):
    """Account-channel bet_resolved push event."""

    bet_id: str
    round_id: str | None = None
    won: bool
    payout: int = 0
    actual: int | None = None
    exact: int | None = None


class OutcomeCard(BaseModel):
    """Immutable summary shown after a bet resolves, until dismissed."""

    model_config = ConfigDict(frozen=True)

    bet_id: str
    round_id: str
    won: bool
    payout: int = 0
    actual: int | None = None
    target: int | None = None
    amount: int = 0
    resolved_at: datetime | None = None
