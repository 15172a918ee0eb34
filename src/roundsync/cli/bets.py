"""Bets subcommand: history from the backend, replica listing per round."""

from __future__ import annotations

import asyncio

import typer

from roundsync.client import BackendClient
from roundsync.errors import NetworkError, ValidationError
from roundsync.models import Bet
from roundsync.storage.bets import bets_for_round
from roundsync.storage.db import get_connection, init_schema

app = typer.Typer(help="The current user's bets")


def _line(b: Bet) -> str:
    what = b.market_id or f"exact {b.exact_count} {b.vehicle_class or 'vehicles'}"
    payout = f" payout {b.payout}" if b.payout is not None else ""
    return f"  {b.id}  {b.round_id}  {b.status.value:<7} {b.amount:>6}  {what}{payout}"


@app.command("history")
def history(
    ctx: typer.Context,
    limit: int = typer.Option(100, "--limit", "-n", help="Max bets (1-200)"),
    round_id: str | None = typer.Option(None, "--round", help="Only this round"),
) -> None:
    """Fetch bet history from the backend."""
    settings = ctx.obj["settings"]

    async def fetch() -> list[Bet]:
        async with BackendClient(
            settings.backend_base_url,
            token=settings.backend_token,
            timeout=settings.backend_timeout_sec,
        ) as client:
            return await client.bet_history(limit=limit, round_id=round_id)

    try:
        bets = asyncio.run(fetch())
    except (NetworkError, ValidationError) as e:
        typer.echo(f"Could not fetch history: {e}", err=True)
        raise typer.Exit(1)
    for b in bets:
        typer.echo(_line(b))
    typer.echo(f"Total: {len(bets)} bets")


@app.command("list")
def list_bets(
    ctx: typer.Context,
    round_id: str = typer.Argument(..., help="Round id"),
    limit: int = typer.Option(20, "--limit", "-n", help="Max bets"),
) -> None:
    """List confirmed bets for a round from the local replica."""
    settings = ctx.obj["settings"]
    conn = get_connection(settings.db_path)
    init_schema(conn)
    try:
        bets = bets_for_round(conn, round_id, limit=limit)
    finally:
        conn.close()
    for b in bets:
        typer.echo(_line(b))
    typer.echo(f"Total: {len(bets)} bets")
