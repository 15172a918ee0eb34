"""Rounds subcommand: show, import."""

from __future__ import annotations

import json
from pathlib import Path

import pydantic
import typer

from roundsync.clock import utcnow
from roundsync.models import Round
from roundsync.rounds.phase import format_countdown, round_phase
from roundsync.storage.db import get_connection, init_schema
from roundsync.storage.rounds import list_rounds, preferred_round, upsert_rounds

app = typer.Typer(help="Rounds in the local replica")


@app.command("show")
def show(
    ctx: typer.Context,
    all_rounds: bool = typer.Option(False, "--all", help="List every stored round"),
) -> None:
    """Show the round the engine would select right now."""
    settings = ctx.obj["settings"]
    conn = get_connection(settings.db_path)
    init_schema(conn)
    try:
        now = utcnow()
        if all_rounds:
            for r in list_rounds(conn):
                typer.echo(f"  {r.id}  {r.status.value:<9} {r.opens_at.isoformat()} -> {r.ends_at.isoformat()}")
        rnd = preferred_round(conn, now, settings.locked_grace_sec)
        if rnd is None:
            typer.echo("No round is currently selectable.")
            return
        phase = round_phase(rnd, now)
        threshold = rnd.params.threshold
        typer.echo(f"Round {rnd.id} [{rnd.status.value}] {rnd.market_type}")
        if threshold is not None:
            typer.echo(f"  Threshold: {threshold} {rnd.params.vehicle_class or 'vehicles'}")
        typer.echo(f"  {phase.badge}: {phase.label} {format_countdown(phase.seconds)}")
        for m in rnd.markets:
            typer.echo(f"  {m.id}  {m.label or m.outcome_key}  x{m.odds:g}")
    finally:
        conn.close()


@app.command("import")
def import_rounds(
    ctx: typer.Context,
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="JSON file: list of rounds or {rounds: [...]}"),
) -> None:
    """Load rounds into the local replica. Stored statuses never move backwards."""
    settings = ctx.obj["settings"]
    raw = json.loads(path.read_text())
    items = raw.get("rounds", []) if isinstance(raw, dict) else raw
    rounds = []
    for item in items:
        try:
            rounds.append(Round.model_validate(item))
        except pydantic.ValidationError as e:
            typer.echo(f"Skipping invalid round {item.get('id') if isinstance(item, dict) else item!r}: {e}", err=True)
    conn = get_connection(settings.db_path)
    init_schema(conn)
    try:
        upsert_rounds(conn, rounds)
    finally:
        conn.close()
    typer.echo(f"Imported {len(rounds)} rounds.")
