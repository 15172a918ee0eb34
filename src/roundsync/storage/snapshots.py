"""Persist count snapshots and answer point-in-time lookups."""

from __future__ import annotations

import json
from datetime import datetime
from typing import TYPE_CHECKING

from roundsync.models import CountSnapshot
from roundsync.storage.db import from_ms, to_ms

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection


def append_snapshot(conn: DuckDBPyConnection, snapshot: CountSnapshot) -> None:
    """Append one count_snapshots row."""
    conn.execute(
        """
        INSERT INTO count_snapshots (camera_id, captured_at, total, vehicle_breakdown)
        VALUES (?, ?, ?, ?)
        """,
        [
            snapshot.camera_id,
            to_ms(snapshot.captured_at),
            snapshot.total,
            json.dumps(snapshot.vehicle_breakdown),
        ],
    )


def latest_snapshot_at_or_before(
    conn: DuckDBPyConnection,
    camera_id: str,
    at: datetime,
) -> CountSnapshot | None:
    """Most recent snapshot for camera_id captured at or before `at`."""
    row = conn.execute(
        """
        SELECT camera_id, captured_at, total, vehicle_breakdown
        FROM count_snapshots
        WHERE camera_id = ? AND captured_at <= ?
        ORDER BY captured_at DESC, id DESC
        LIMIT 1
        """,
        [camera_id, to_ms(at)],
    ).fetchone()
    if row is None:
        return None
    breakdown = row[3]
    if isinstance(breakdown, str):
        try:
            breakdown = json.loads(breakdown)
        except json.JSONDecodeError:
            breakdown = {}
    return CountSnapshot(
        camera_id=row[0],
        captured_at=from_ms(row[1]),
        total=int(row[2]),
        vehicle_breakdown=breakdown or {},
    )
