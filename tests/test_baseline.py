"""Baseline resolver against the DuckDB snapshot replica."""

import asyncio
from datetime import timedelta

from conftest import T0, make_round

from roundsync.baseline.resolver import BaselineResolver, DuckDBSnapshotSource
from roundsync.models import CountSnapshot
from roundsync.storage.snapshots import append_snapshot


def _seed(conn):
    append_snapshot(conn, CountSnapshot(camera_id="cam-1", captured_at=T0 - timedelta(seconds=60), total=100))
    append_snapshot(
        conn,
        CountSnapshot(
            camera_id="cam-1",
            captured_at=T0 - timedelta(seconds=10),
            total=120,
            vehicle_breakdown={"car": 30, "truck": 5},
        ),
    )
    append_snapshot(conn, CountSnapshot(camera_id="cam-2", captured_at=T0 - timedelta(seconds=5), total=7))


def test_latest_snapshot_at_or_before(temp_db):
    _seed(temp_db)
    resolver = BaselineResolver(DuckDBSnapshotSource(temp_db))
    assert asyncio.run(resolver.resolve_baseline(T0, "cam-1")) == 120
    assert asyncio.run(resolver.resolve_baseline(T0, "cam-1", "car")) == 30
    assert asyncio.run(resolver.resolve_baseline(T0 - timedelta(seconds=10), "cam-1")) == 120
    assert asyncio.run(resolver.resolve_baseline(T0 - timedelta(seconds=30), "cam-1")) == 100


def test_missing_snapshot_or_class_is_zero(temp_db):
    _seed(temp_db)
    resolver = BaselineResolver(DuckDBSnapshotSource(temp_db))
    assert asyncio.run(resolver.resolve_baseline(T0 - timedelta(hours=1), "cam-1")) == 0
    assert asyncio.run(resolver.resolve_baseline(T0, "cam-9")) == 0
    assert asyncio.run(resolver.resolve_baseline(T0, "cam-1", "bus")) == 0


def test_round_baseline_cached_per_round(temp_db):
    _seed(temp_db)
    resolver = BaselineResolver(DuckDBSnapshotSource(temp_db))
    rnd = make_round("R1", "open", opens_at=T0)
    assert asyncio.run(resolver.round_baseline(rnd)) == 120

    # a later snapshot at the same instant does not change the cached value
    append_snapshot(temp_db, CountSnapshot(camera_id="cam-1", captured_at=T0, total=150))
    assert asyncio.run(resolver.round_baseline(rnd)) == 120
    assert resolver.cached("R1") == 120

    resolver.clear()
    assert resolver.cached("R1") is None
    assert asyncio.run(resolver.round_baseline(rnd)) == 150


def test_round_without_camera_has_zero_baseline(temp_db):
    _seed(temp_db)
    resolver = BaselineResolver(DuckDBSnapshotSource(temp_db))
    assert asyncio.run(resolver.round_baseline(make_round("R2", camera_id=None))) == 0
