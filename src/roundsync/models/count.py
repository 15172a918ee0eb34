"""CountFrame, CountSnapshot - live and persisted vehicle counts."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from roundsync.clock import ensure_utc


class Detection(BaseModel):
    """One bounding box from the vision pipeline. Coordinates are content-relative [0, 1]."""

    cls: str = ""
    conf: float = 0.0
    x1: float = 0.0
    y1: float = 0.0
    x2: float = 0.0
    y2: float = 0.0
    tracker_id: int | None = None
    in_detect_zone: bool = True


class CountFrame(BaseModel):
    """Live push-channel observation. Consumed once, never persisted by the engine."""

    camera_id: str | None = None
    captured_at: datetime
    total: int = Field(0, ge=0)
    vehicle_breakdown: dict[str, int] = Field(default_factory=dict)
    new_crossings: int = 0
    detections: list[Detection] = Field(default_factory=list)
    runtime_profile: str | None = None
    scene_lighting: str | None = None
    # Seeded from the health endpoint, not the live channel
    bootstrap: bool = False

    @field_validator("captured_at")
    @classmethod
    def _utc(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    def count_for(self, vehicle_class: str | None = None) -> int:
        """Class count when a class is targeted, else the total."""
        if vehicle_class:
            return int(self.vehicle_breakdown.get(vehicle_class, 0))
        return self.total


class CountSnapshot(BaseModel):
    """Periodic persisted count used for point-in-time baseline lookups."""

    camera_id: str
    captured_at: datetime
    total: int = Field(0, ge=0)
    vehicle_breakdown: dict[str, int] = Field(default_factory=dict)

    @field_validator("captured_at")
    @classmethod
    def _utc(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    def count_for(self, vehicle_class: str | None = None) -> int:
        if vehicle_class:
            return int(self.vehicle_breakdown.get(vehicle_class, 0))
        return self.total
