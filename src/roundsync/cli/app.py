"""Root CLI app - entry point and command registration."""

from pathlib import Path

import typer

from roundsync.config import get_settings
from roundsync.config.settings import configure_logging

app = typer.Typer(
    name="roundsync",
    help="RoundSync - live round, count and bet reconciliation engine.",
    no_args_is_help=True,
)


@app.callback()
def main(
    ctx: typer.Context,
    config_dir: Path | None = typer.Option(
        None, "--config-dir", "-C", help="Config directory (default: ./config or package config)"
    ),
    profile: str | None = typer.Option(
        None, "--profile", "-p", help="Config profile (e.g. dev) to overlay on default.toml"
    ),
) -> None:
    """Configure logging and store options in context."""
    settings = get_settings(profile, config_dir)
    configure_logging(settings)
    ctx.obj = {"settings": settings, "config_dir": config_dir, "profile": profile}


# Subcommands registered from other modules
from roundsync.cli import api_cmd, bets, outcome, rounds, run as run_cmd, snapshots  # noqa: E402

app.command("run")(run_cmd.run_engine)
app.add_typer(rounds.app, name="rounds")
app.add_typer(bets.app, name="bets")
app.add_typer(snapshots.app, name="snapshots")
app.add_typer(outcome.app, name="outcome")
app.add_typer(api_cmd.app, name="api")


def run() -> None:
    app()


if __name__ == "__main__":
    run()
