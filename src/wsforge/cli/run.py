"""``wsforge run`` and ``wsforge scenarios``: execute and inspect the workload."""

from __future__ import annotations

import dataclasses
import logging
from typing import TYPE_CHECKING

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from wsforge._internal.config import load_config, parse_duration
from wsforge._internal.errors import WsForgeError
from wsforge.engine.runner import run_workload
from wsforge.scenarios.catalog import list_scenarios, resolve_scenario

if TYPE_CHECKING:
    from wsforge._internal.config import WsForgeConfig
    from wsforge.engine.runner import RunResult

console = Console(stderr=True)


# ---------------------------------------------------------------------------
# Summary rendering
# ---------------------------------------------------------------------------


def _print_summary(result: RunResult) -> None:
    """Print the final counters, gauges, checks and thresholds.

    Args:
        result: Completed run result.
    """
    table = Table(
        title="Run Complete",
        show_header=True,
        header_style="bold green",
        expand=True,
    )
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")

    table.add_row("Scenario", result.scenario_name)
    table.add_row("Duration", f"{result.duration_seconds:.1f}s")
    table.add_row("Iterations", str(result.iterations))
    table.add_row("Dropped Iterations", str(result.dropped_iterations))
    for name, total in sorted(result.counters.items()):
        table.add_row(name, f"{total:g}")
    for name, value in sorted(result.gauges.items()):
        table.add_row(name, f"{value:.1f}ms")
    console.print(table)

    if result.checks:
        checks = Table(title="Checks", show_header=True, header_style="bold cyan", expand=True)
        checks.add_column("Check")
        checks.add_column("Passes", justify="right")
        checks.add_column("Fails", justify="right")
        for name, tally in sorted(result.checks.items()):
            checks.add_row(name, str(tally.passes), str(tally.fails))
        console.print(checks)

    if result.thresholds:
        thresholds = Table(
            title="Thresholds", show_header=True, header_style="bold cyan", expand=True
        )
        thresholds.add_column("Threshold")
        thresholds.add_column("Observed", justify="right")
        thresholds.add_column("Result", justify="right")
        for outcome in result.thresholds:
            observed = "-" if outcome.observed is None else f"{outcome.observed:g}"
            verdict = "[green]pass[/green]" if outcome.passed else "[red]fail[/red]"
            thresholds.add_row(str(outcome.threshold), observed, verdict)
        console.print(thresholds)


def _apply_overrides(
    config: WsForgeConfig,
    *,
    url: str | None,
    scene: str | None,
    vus: int | None,
    duration: str | None,
    probe: str | None,
) -> WsForgeConfig:
    overrides = {
        "url": url,
        "scene": scene,
        "vus": vus,
        "duration": duration,
        "probe": probe,
    }
    return dataclasses.replace(config, **{k: v for k, v in overrides.items() if v is not None})


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def run_cmd(
    url: str | None = typer.Option(
        None,
        "--url",
        help="WebSocket endpoint under test (default: $WSFORGE_URL).",
    ),
    scene: str | None = typer.Option(
        None,
        "--scene",
        "-s",
        help="Scenario: iterations, ramping_arrival_rate, stress, constant, or breakpoint.",
    ),
    vus: int | None = typer.Option(
        None,
        "--vus",
        "-u",
        help="Worker count for the constant scenario.",
        min=0,
    ),
    duration: str | None = typer.Option(
        None,
        "--duration",
        "-d",
        help="Run duration for the constant scenario, e.g. 30s or 1m10s.",
    ),
    probe: str | None = typer.Option(
        None,
        "--probe",
        help="Probe payload sent on open and expected back as the echo.",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose (DEBUG) logging.",
    ),
    json_logs: bool = typer.Option(
        False,
        "--json-logs",
        help="Emit one JSON object per log line.",
    ),
) -> None:
    """Run the probe workload and exit non-zero if a threshold fails."""
    try:
        config = _apply_overrides(
            load_config(),
            url=url,
            scene=scene,
            vus=vus,
            duration=duration,
            probe=probe,
        )
        scenario = resolve_scenario(config.scene, duration=config.duration, vus=config.vus)
    except WsForgeError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(code=1) from exc

    console.print(
        Panel(
            f"[bold]Endpoint:[/bold] {config.url}\n"
            f"[bold]Scenario:[/bold] {scenario.name.value}\n"
            f"[bold]Workers:[/bold]  {scenario.concurrency}\n"
            f"[bold]Duration:[/bold] {scenario.total_duration:g}s",
            title="WsForge",
            border_style="cyan",
        )
    )

    log_level = logging.DEBUG if verbose else logging.INFO
    try:
        result = run_workload(config, log_level=log_level, json_logs=json_logs)
    except WsForgeError as exc:
        console.print(f"[red]Run failed:[/red] {exc}")
        raise typer.Exit(code=1) from exc

    _print_summary(result)

    if not result.thresholds_passed:
        console.print("[red]FAIL:[/red] one or more thresholds were not met")
        raise typer.Exit(code=1)

    console.print("[green]Run completed successfully.[/green]")


def scenarios_cmd(
    duration: str = typer.Option(
        "1m",
        "--duration",
        "-d",
        help="Duration used for the constant scenario.",
    ),
) -> None:
    """Print the scenario catalog."""
    try:
        parse_duration(duration)
    except WsForgeError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(code=1) from exc

    table = Table(title="Scenarios", show_header=True, header_style="bold cyan", expand=True)
    table.add_column("Name", style="bold")
    table.add_column("Sub-runs")
    table.add_column("Duration", justify="right")
    table.add_column("Max VUs", justify="right")
    table.add_column("Thresholds")

    for scenario in list_scenarios(duration=duration):
        table.add_row(
            scenario.name.value,
            ", ".join(run.name for run in scenario.runs),
            f"{scenario.total_duration:g}s",
            str(scenario.concurrency),
            ", ".join(str(t) for t in scenario.thresholds) or "-",
        )
    console.print(table)
