"""Snapshots subcommand: baseline lookup, import."""

from __future__ import annotations

import asyncio
import json
from datetime import datetime
from pathlib import Path

import pydantic
import typer

from roundsync.baseline.resolver import BaselineResolver, DuckDBSnapshotSource
from roundsync.clock import ensure_utc
from roundsync.models import CountSnapshot
from roundsync.storage.db import get_connection, init_schema
from roundsync.storage.snapshots import append_snapshot

app = typer.Typer(help="Count snapshots and baselines")


@app.command("baseline")
def baseline(
    ctx: typer.Context,
    camera: str = typer.Option(..., "--camera", help="Camera id"),
    at: datetime = typer.Option(..., "--at", help="Reference time, YYYY-MM-DDTHH:MM:SS in UTC"),
    vehicle_class: str | None = typer.Option(None, "--class", help="Vehicle class (default: total)"),
) -> None:
    """Count at the latest snapshot at or before --at (0 when there is none)."""
    settings = ctx.obj["settings"]
    conn = get_connection(settings.db_path)
    init_schema(conn)
    try:
        resolver = BaselineResolver(DuckDBSnapshotSource(conn))
        value = asyncio.run(resolver.resolve_baseline(ensure_utc(at), camera, vehicle_class))
    finally:
        conn.close()
    typer.echo(str(value))


@app.command("import")
def import_snapshots(
    ctx: typer.Context,
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="JSON list of snapshots"),
) -> None:
    """Append count snapshots to the local replica."""
    settings = ctx.obj["settings"]
    raw = json.loads(path.read_text())
    snapshots = []
    for item in raw if isinstance(raw, list) else raw.get("snapshots", []):
        try:
            snapshots.append(CountSnapshot.model_validate(item))
        except pydantic.ValidationError as e:
            typer.echo(f"Skipping invalid snapshot: {e}", err=True)
    conn = get_connection(settings.db_path)
    init_schema(conn)
    try:
        for s in snapshots:
            append_snapshot(conn, s)
    finally:
        conn.close()
    typer.echo(f"Imported {len(snapshots)} snapshots.")
