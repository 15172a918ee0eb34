"""Run the live engine in the foreground."""

from __future__ import annotations

import asyncio
import signal
import sys

import typer

from roundsync.engine import build_engine
from roundsync.storage.db import get_connection, init_schema


def run_engine(
    ctx: typer.Context,
    camera: str | None = typer.Option(None, "--camera", help="Camera id filter (overrides config)"),
) -> None:
    """Connect the push channels, poll the backend, keep state until Ctrl+C."""
    settings = ctx.obj["settings"]
    if camera:
        settings.stream["camera_id"] = camera
    conn = get_connection(settings.db_path)
    init_schema(conn)
    engine = build_engine(settings, conn)
    stop_event = asyncio.Event()

    def shutdown() -> None:
        stop_event.set()

    loop = asyncio.new_event_loop()
    if sys.platform != "win32":
        loop.add_signal_handler(signal.SIGINT, shutdown)
        loop.add_signal_handler(signal.SIGTERM, shutdown)
    try:
        typer.echo("Starting engine (Ctrl+C to stop)...")
        loop.run_until_complete(engine.run(stop_event=stop_event))
    except KeyboardInterrupt:
        pass
    finally:
        loop.run_until_complete(engine.aclose())
        loop.close()
        conn.close()
    typer.echo("Stopped.")
