"""DuckDB connection and schema init."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING

import duckdb

from roundsync.clock import ensure_utc

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

SCHEMA_SQL = """
CREATE SEQUENCE IF NOT EXISTS snap_seq START 1;

-- Rounds (replica of the persistence layer, timestamps are ms epoch)
CREATE TABLE IF NOT EXISTS rounds (
    id              VARCHAR PRIMARY KEY,
    status          VARCHAR NOT NULL,
    market_type     VARCHAR NOT NULL,
    params          JSON,
    opens_at        BIGINT NOT NULL,
    closes_at       BIGINT,
    ends_at         BIGINT NOT NULL,
    camera_id       VARCHAR,
    updated_at      BIGINT NOT NULL
);

-- Markets owned by a round
CREATE TABLE IF NOT EXISTS markets (
    id              VARCHAR PRIMARY KEY,
    round_id        VARCHAR NOT NULL,
    outcome_key     VARCHAR,
    label           VARCHAR,
    odds            DOUBLE NOT NULL,
    total_staked    BIGINT DEFAULT 0
);

-- Confirmed bets for the current user
CREATE TABLE IF NOT EXISTS bets (
    id              VARCHAR PRIMARY KEY,
    round_id        VARCHAR NOT NULL,
    status          VARCHAR NOT NULL,
    placed_at       BIGINT NOT NULL,
    payload         JSON NOT NULL
);

-- Periodic count snapshots for baseline lookups
CREATE TABLE IF NOT EXISTS count_snapshots (
    id                  BIGINT PRIMARY KEY DEFAULT nextval('snap_seq'),
    camera_id           VARCHAR NOT NULL,
    captured_at         BIGINT NOT NULL,
    total               BIGINT NOT NULL,
    vehicle_breakdown   JSON
);

-- Namespaced key/value store (dismissals, outcome card)
CREATE TABLE IF NOT EXISTS kv_store (
    namespace       VARCHAR NOT NULL,
    key             VARCHAR NOT NULL,
    value           JSON,
    updated_at      BIGINT NOT NULL,
    PRIMARY KEY (namespace, key)
);
"""


def get_connection(db_path: str | Path, read_only: bool = False) -> DuckDBPyConnection:
    """Return a DuckDB connection. Caller must close or use as context manager."""
    path = Path(db_path)
    if not read_only:
        path.parent.mkdir(parents=True, exist_ok=True)
    return duckdb.connect(str(path), read_only=read_only)


def init_schema(conn: DuckDBPyConnection) -> None:
    """Create tables and sequences if they do not exist."""
    for stmt in SCHEMA_SQL.split(";"):
        stmt = stmt.strip()
        if stmt:
            try:
                conn.execute(stmt)
            except duckdb.Error as e:
                if "already exists" not in str(e).lower():
                    raise


def to_ms(dt: datetime) -> int:
    return int(ensure_utc(dt).timestamp() * 1000)


def from_ms(ms: int | None) -> datetime | None:
    if ms is None:
        return None
    return datetime.fromtimestamp(ms / 1000.0, tz=timezone.utc)
