"""API server command."""

import typer

from roundsync.api.main import run_api

app = typer.Typer(help="Serve engine state over HTTP")


@app.callback(invoke_without_command=True)
def api(
    ctx: typer.Context,
    host: str = typer.Option("127.0.0.1", "--host", help="Bind host"),
    port: int = typer.Option(8000, "--port", help="Bind port"),
    with_engine: bool = typer.Option(
        True, "--with-engine/--no-engine", help="Run the live engine in the same process",
    ),
) -> None:
    if ctx.invoked_subcommand is not None:
        return
    run_api(
        host=host,
        port=port,
        with_engine=with_engine,
        profile=ctx.obj["profile"],
        config_dir=ctx.obj["config_dir"],
    )


if __name__ == "__main__":
    app()
