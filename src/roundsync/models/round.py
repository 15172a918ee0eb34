"""Round, Market - betting period and its wagerable outcomes."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from roundsync.clock import ensure_utc


class RoundStatus(str, Enum):
    """Server-driven lifecycle. Transitions only move forward."""

    UPCOMING = "upcoming"
    OPEN = "open"
    LOCKED = "locked"
    RESOLVED = "resolved"

    @property
    def rank(self) -> int:
        return _STATUS_RANK[self]


_STATUS_RANK = {
    RoundStatus.UPCOMING: 0,
    RoundStatus.OPEN: 1,
    RoundStatus.LOCKED: 2,
    RoundStatus.RESOLVED: 3,
}

ACTIVE_STATUSES = (RoundStatus.UPCOMING, RoundStatus.OPEN, RoundStatus.LOCKED)


class RoundParams(BaseModel):
    """Market configuration: count threshold and optional vehicle class filter."""

    model_config = ConfigDict(extra="allow")

    threshold: int | None = None
    vehicle_class: str | None = None


class Market(BaseModel):
    """Single wagerable outcome in a round (e.g. over 50)."""

    id: str
    round_id: str | None = None
    outcome_key: str = ""  # over / under / exact / class name
    label: str = ""
    odds: float = Field(..., gt=0)
    total_staked: int = 0


class Round(BaseModel):
    """Timed betting period with a fixed market configuration."""

    id: str
    status: RoundStatus
    market_type: str = "over_under"
    params: RoundParams = Field(default_factory=RoundParams)
    opens_at: datetime
    closes_at: datetime | None = None
    ends_at: datetime
    camera_id: str | None = None
    markets: list[Market] = Field(default_factory=list)

    @field_validator("opens_at", "closes_at", "ends_at")
    @classmethod
    def _utc(cls, v: datetime | None) -> datetime | None:
        return ensure_utc(v) if v is not None else None

    @field_validator("status", mode="before")
    @classmethod
    def _lower_status(cls, v: Any) -> Any:
        return v.lower() if isinstance(v, str) else v

    def is_round_relative_eligible(self, now: datetime) -> bool:
        """Active status and not yet ended: progress is measured against the baseline."""
        return self.status in ACTIVE_STATUSES and ensure_utc(now) < self.ends_at

    def signature(self) -> tuple[str, str, str, str, str]:
        """Identity + status + timing; changes only when something displayable changed."""
        return (
            self.id,
            self.status.value,
            self.opens_at.isoformat(),
            self.closes_at.isoformat() if self.closes_at else "",
            self.ends_at.isoformat(),
        )

    def market(self, market_id: str) -> Market | None:
        for m in self.markets:
            if m.id == market_id:
                return m
        return None
