"""HealthStatus - backend health/status snapshot."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, field_validator

from roundsync.clock import ensure_utc
from roundsync.models.count import CountFrame


class HealthStatus(BaseModel):
    """Bootstrap count plus the fallback next-round time when nothing is selectable."""

    status: str = "ok"
    bootstrap: CountFrame | None = None
    next_round_at: datetime | None = None

    @field_validator("next_round_at")
    @classmethod
    def _utc(cls, v: datetime | None) -> datetime | None:
        return ensure_utc(v) if v is not None else None
