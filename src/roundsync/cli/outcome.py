"""Outcome subcommand: show, dismiss."""

from __future__ import annotations

import typer

from roundsync.outcome.notifier import OutcomeNotifier
from roundsync.storage.db import get_connection, init_schema
from roundsync.storage.kv import DuckDBStore

app = typer.Typer(help="Latest resolved outcome card")


def _notifier(conn, settings) -> OutcomeNotifier:
    return OutcomeNotifier(DuckDBStore(conn, settings.kv_namespace).namespace("outcome"))


@app.command("show")
def show(ctx: typer.Context) -> None:
    """Show the persisted outcome card, if any."""
    settings = ctx.obj["settings"]
    conn = get_connection(settings.db_path)
    init_schema(conn)
    try:
        card = _notifier(conn, settings).card
        if card is None:
            typer.echo("No outcome card.")
            return
        verdict = "WON" if card.won else "LOST"
        typer.echo(f"Bet {card.bet_id} (round {card.round_id}): {verdict}")
        typer.echo(f"  Stake: {card.amount}  Payout: {card.payout}")
        if card.actual is not None:
            typer.echo(f"  Actual: {card.actual}  Target: {card.target if card.target is not None else '-'}")
    finally:
        conn.close()


@app.command("dismiss")
def dismiss(ctx: typer.Context, bet_id: str = typer.Argument(..., help="Resolved bet id")) -> None:
    """Dismiss a resolved bet's card permanently."""
    settings = ctx.obj["settings"]
    conn = get_connection(settings.db_path)
    init_schema(conn)
    try:
        cleared = _notifier(conn, settings).dismiss(bet_id)
    finally:
        conn.close()
    typer.echo(f"Dismissed {bet_id}." if cleared else f"Recorded dismissal for {bet_id}.")
