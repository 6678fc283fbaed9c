"""Main Typer application: entry point for the ``wsforge`` CLI."""

from __future__ import annotations

import typer

from wsforge import __version__
from wsforge.cli.run import run_cmd, scenarios_cmd

app = typer.Typer(
    name="wsforge",
    help="Probe/echo load tests for WebSocket endpoints.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

app.command("run", help="Run the probe workload against an endpoint.")(run_cmd)
app.command("scenarios", help="List the available load scenarios.")(scenarios_cmd)


def _version_callback(value: bool) -> None:
    """Print version and exit.

    Args:
        value: True if --version was passed.
    """
    if value:
        typer.echo(f"wsforge {__version__}")
        raise typer.Exit


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """WsForge: probe/echo load tests for WebSocket endpoints."""
