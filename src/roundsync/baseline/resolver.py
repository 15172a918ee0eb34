"""Baseline resolver - nearest-preceding snapshot lookup with a per-round cache."""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import TYPE_CHECKING, Protocol

import structlog

from roundsync.models import CountSnapshot, Round
from roundsync.storage.snapshots import latest_snapshot_at_or_before

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

log = structlog.get_logger(__name__)


class SnapshotSource(Protocol):
    """Point-in-time snapshot query against the persistence layer."""

    async def latest_snapshot_at_or_before(self, camera_id: str, at: datetime) -> CountSnapshot | None: ...


class DuckDBSnapshotSource:
    """Snapshot lookups against the local DuckDB replica, off the event loop."""

    def __init__(self, conn: DuckDBPyConnection) -> None:
        self._conn = conn

    def _lookup(self, camera_id: str, at: datetime) -> CountSnapshot | None:
        with self._conn.cursor() as cur:
            return latest_snapshot_at_or_before(cur, camera_id, at)

    async def latest_snapshot_at_or_before(self, camera_id: str, at: datetime) -> CountSnapshot | None:
        return await asyncio.to_thread(self._lookup, camera_id, at)


def baseline_value(snapshot: CountSnapshot | None, vehicle_class: str | None = None) -> int:
    """Class count (or total) from a snapshot; 0 when there is none."""
    if snapshot is None:
        return 0
    return snapshot.count_for(vehicle_class)


class BaselineResolver:
    """Resolves and caches round baselines; computes per-wager baselines on demand."""

    def __init__(self, source: SnapshotSource) -> None:
        self._source = source
        self._cache: dict[str, int] = {}

    async def resolve_baseline(
        self,
        reference_time: datetime,
        camera_id: str,
        vehicle_class: str | None = None,
    ) -> int:
        """Count at the most recent snapshot at or before reference_time (0 if none)."""
        snapshot = await self._source.latest_snapshot_at_or_before(camera_id, reference_time)
        value = baseline_value(snapshot, vehicle_class)
        log.debug(
            "baseline_resolved",
            camera_id=camera_id,
            at=reference_time.isoformat(),
            vehicle_class=vehicle_class,
            value=value,
            found=snapshot is not None,
        )
        return value

    async def round_baseline(self, rnd: Round) -> int:
        """Baseline for a round at its opening time, cached by round id."""
        if rnd.id in self._cache:
            return self._cache[rnd.id]
        if not rnd.camera_id:
            value = 0
        else:
            value = await self.resolve_baseline(rnd.opens_at, rnd.camera_id, rnd.params.vehicle_class)
        self._cache[rnd.id] = value
        return value

    def cached(self, round_id: str) -> int | None:
        return self._cache.get(round_id)

    def clear(self) -> None:
        self._cache.clear()
