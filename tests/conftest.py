"""Shared fixtures: temp DuckDB replica and model factories."""

import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from roundsync.models import Bet, CountFrame, Market, Round, RoundParams
from roundsync.storage.db import get_connection, init_schema

T0 = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def temp_db():
    tmp = tempfile.mkdtemp()
    path = Path(tmp) / "test.duckdb"
    conn = get_connection(path)
    init_schema(conn)
    yield conn
    conn.close()
    path.unlink(missing_ok=True)
    Path(tmp).rmdir()


def make_round(
    round_id="R1",
    status="open",
    opens_at=None,
    closes_at=None,
    ends_at=None,
    threshold=50,
    vehicle_class=None,
    camera_id="cam-1",
):
    opens_at = opens_at or T0 - timedelta(minutes=1)
    ends_at = ends_at or opens_at + timedelta(minutes=5)
    return Round(
        id=round_id,
        status=status,
        params=RoundParams(threshold=threshold, vehicle_class=vehicle_class),
        opens_at=opens_at,
        closes_at=closes_at,
        ends_at=ends_at,
        camera_id=camera_id,
        markets=[
            Market(id=f"{round_id}-over", round_id=round_id, outcome_key="over", label="Over", odds=1.85),
            Market(id=f"{round_id}-under", round_id=round_id, outcome_key="under", label="Under", odds=2.1),
        ],
    )


def make_bet(bet_id="abc", round_id="R1", status="pending", placed_at=None, **kwargs):
    kwargs.setdefault("amount", 100)
    return Bet(id=bet_id, round_id=round_id, status=status, placed_at=placed_at or T0, **kwargs)


def make_frame(offset_ms=0, total=0, camera_id="cam-1", breakdown=None, detections=None):
    return CountFrame(
        camera_id=camera_id,
        captured_at=T0 + timedelta(milliseconds=offset_ms),
        total=total,
        vehicle_breakdown=breakdown or {},
        detections=detections or [],
    )
