"""Canonical schema (Pydantic) - Round, Market, Bet, CountFrame, CountSnapshot."""

from roundsync.models.bet import (
    Bet,
    BetDraft,
    BetPlacement,
    BetResolution,
    BetStatus,
    BetType,
    OutcomeCard,
)
from roundsync.models.count import CountFrame, CountSnapshot, Detection
from roundsync.models.health import HealthStatus
from roundsync.models.round import Market, Round, RoundParams, RoundStatus

__all__ = [
    "Bet",
    "BetDraft",
    "BetPlacement",
    "BetResolution",
    "BetStatus",
    "BetType",
    "CountFrame",
    "CountSnapshot",
    "Detection",
    "HealthStatus",
    "Market",
    "OutcomeCard",
    "Round",
    "RoundParams",
    "RoundStatus",
]
