"""Confirmed bet persistence (replica of the user's bets)."""

from __future__ import annotations

from typing import TYPE_CHECKING

from roundsync.models import Bet
from roundsync.storage.db import to_ms

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection


def upsert_bets(conn: DuckDBPyConnection, bets: list[Bet]) -> None:
    """Store confirmed bets. Optimistic placeholders are never persisted."""
    for b in bets:
        if b.optimistic:
            continue
        conn.execute(
            """
            INSERT INTO bets (id, round_id, status, placed_at, payload)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT (id) DO UPDATE SET
                status = excluded.status,
                payload = excluded.payload
            """,
            [b.id, b.round_id, b.status.value, to_ms(b.placed_at), b.model_dump_json()],
        )


def bets_for_round(conn: DuckDBPyConnection, round_id: str, limit: int = 20) -> list[Bet]:
    """Bets for round_id, newest first."""
    rows = conn.execute(
        "SELECT payload FROM bets WHERE round_id = ? ORDER BY placed_at DESC LIMIT ?",
        [round_id, limit],
    ).fetchall()
    return [Bet.model_validate_json(r[0]) for r in rows]
