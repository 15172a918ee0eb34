"""Pydantic schemas for API request/response consistency and OpenAPI docs."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from roundsync.models import OutcomeCard


# --- Health ---
class HealthResponse(BaseModel):
    status: str = "ok"
    connected: bool = False
    round_id: str | None = None
    generation: int = 0


# --- Error (consistent shape for 4xx/5xx) ---
class ErrorResponse(BaseModel):
    detail: str = Field(..., description="Human-readable message")
    code: str | None = Field(None, description="Machine-readable code, e.g. not_found, engine_unavailable")


# --- Engine state ---
class PhaseResponse(BaseModel):
    badge: str
    label: str
    seconds: int
    countdown: str


class BetViewResponse(BaseModel):
    bet: dict[str, Any]
    progress: int | None = None
    target: int | None = None
    chance: float | None = Field(None, description="Heuristic 0-100, not a calibrated probability")
    hint: str | None = None
    band: str | None = Field(None, description="on_track, close or over")


class StateResponse(BaseModel):
    at: str
    generation: int
    round: dict[str, Any] | None = None
    phase: PhaseResponse | None = None
    round_baseline: int | None = None
    round_progress: int | None = None
    observation: dict[str, Any] | None = None
    bets: list[BetViewResponse] = Field(default_factory=list)
    outcome: OutcomeCard | None = None
    connected: bool = False
    next_round_at: str | None = None
    balance: int | None = None
    stream: dict[str, Any] = Field(default_factory=dict)


# --- Outcome ---
class OutcomeResponse(BaseModel):
    card: OutcomeCard | None = None


class DismissResponse(BaseModel):
    bet_id: str
    dismissed: bool
