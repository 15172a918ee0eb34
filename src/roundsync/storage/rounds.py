"""Round and market persistence; preferred-round query."""

from __future__ import annotations

import json
import time
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any

from roundsync.models import Market, Round, RoundParams, RoundStatus
from roundsync.storage.db import from_ms, to_ms

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

_ROUND_COLUMNS = "id, status, market_type, params, opens_at, closes_at, ends_at, camera_id"

# Status rank used to keep stored status monotonic
_RANK_SQL = "CASE {col} WHEN 'upcoming' THEN 0 WHEN 'open' THEN 1 WHEN 'locked' THEN 2 WHEN 'resolved' THEN 3 ELSE -1 END"


def upsert_round(conn: DuckDBPyConnection, rnd: Round) -> None:
    """Insert or update a round and its markets. Status never moves backward."""
    conn.execute(
        f"""
        INSERT INTO rounds (id, status, market_type, params, opens_at, closes_at, ends_at, camera_id, updated_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        ON CONFLICT (id) DO UPDATE SET
            status = CASE WHEN {_RANK_SQL.format(col="excluded.status")} >= {_RANK_SQL.format(col="status")}
                          THEN excluded.status ELSE status END,
            market_type = excluded.market_type,
            params = excluded.params,
            opens_at = excluded.opens_at,
            closes_at = excluded.closes_at,
            ends_at = excluded.ends_at,
            camera_id = excluded.camera_id,
            updated_at = excluded.updated_at
        """,
        [
            rnd.id,
            rnd.status.value,
            rnd.market_type,
            json.dumps(rnd.params.model_dump()),
            to_ms(rnd.opens_at),
            to_ms(rnd.closes_at) if rnd.closes_at else None,
            to_ms(rnd.ends_at),
            rnd.camera_id,
            int(time.time() * 1000),
        ],
    )
    for m in rnd.markets:
        conn.execute(
            """
            INSERT INTO markets (id, round_id, outcome_key, label, odds, total_staked)
            VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT (id) DO UPDATE SET
                outcome_key = excluded.outcome_key,
                label = excluded.label,
                odds = excluded.odds,
                total_staked = excluded.total_staked
            """,
            [m.id, rnd.id, m.outcome_key, m.label, m.odds, m.total_staked],
        )


def upsert_rounds(conn: DuckDBPyConnection, rounds: list[Round]) -> None:
    for r in rounds:
        upsert_round(conn, r)


def _markets_for(conn: DuckDBPyConnection, round_id: str) -> list[Market]:
    rows = conn.execute(
        "SELECT id, round_id, outcome_key, label, odds, total_staked FROM markets WHERE round_id = ? ORDER BY id",
        [round_id],
    ).fetchall()
    return [
        Market(id=r[0], round_id=r[1], outcome_key=r[2] or "", label=r[3] or "", odds=r[4], total_staked=r[5] or 0)
        for r in rows
    ]


def _row_to_round(conn: DuckDBPyConnection, row: tuple[Any, ...]) -> Round:
    params = row[3]
    if isinstance(params, str):
        params = json.loads(params) if params else {}
    return Round(
        id=row[0],
        status=RoundStatus(row[1]),
        market_type=row[2],
        params=RoundParams(**(params or {})),
        opens_at=from_ms(row[4]),
        closes_at=from_ms(row[5]),
        ends_at=from_ms(row[6]),
        camera_id=row[7],
        markets=_markets_for(conn, row[0]),
    )


def get_round(conn: DuckDBPyConnection, round_id: str) -> Round | None:
    row = conn.execute(f"SELECT {_ROUND_COLUMNS} FROM rounds WHERE id = ?", [round_id]).fetchone()
    return _row_to_round(conn, row) if row else None


def list_rounds(conn: DuckDBPyConnection, statuses: list[str] | None = None) -> list[Round]:
    """List rounds, optionally filtered by status, ordered by opens_at."""
    if statuses:
        placeholders = ", ".join("?" for _ in statuses)
        rows = conn.execute(
            f"SELECT {_ROUND_COLUMNS} FROM rounds WHERE status IN ({placeholders}) ORDER BY opens_at",
            list(statuses),
        ).fetchall()
    else:
        rows = conn.execute(f"SELECT {_ROUND_COLUMNS} FROM rounds ORDER BY opens_at").fetchall()
    return [_row_to_round(conn, r) for r in rows]


def preferred_round(
    conn: DuckDBPyConnection,
    now: datetime,
    locked_grace_sec: float = 120.0,
) -> Round | None:
    """
    Single presentable round: open and not ended (latest opens_at), else locked and ended
    no more than locked_grace_sec ago (latest ends_at), else the soonest upcoming.
    """
    now_ms = to_ms(now)
    grace_floor = to_ms(now - timedelta(seconds=locked_grace_sec))
    row = conn.execute(
        f"""
        SELECT {_ROUND_COLUMNS} FROM rounds
        WHERE (status = 'open' AND ends_at > ?)
           OR (status = 'locked' AND ends_at >= ?)
           OR status = 'upcoming'
        ORDER BY
            CASE status WHEN 'open' THEN 0 WHEN 'locked' THEN 1 ELSE 2 END,
            CASE status WHEN 'open' THEN -opens_at WHEN 'locked' THEN -ends_at ELSE opens_at END
        LIMIT 1
        """,
        [now_ms, grace_floor],
    ).fetchone()
    return _row_to_round(conn, row) if row else None
