"""Maintain and run CLI commands -- one maintenance cycle, or the background loops."""

import time
from pathlib import Path
from typing import Optional

import typer
from rich.markup import escape
from rich.table import Table

from ..logging_config import setup_logging
from ..maintenance.infrastructure import SelfMaintainingTestInfrastructure
from ..maintenance.models import InfrastructureReport
from . import app
from ._common import console, health_label, print_json, resolve_config


def render_report(report: InfrastructureReport) -> None:
    summary = report.performance_summary
    console.print()
    console.print(
        f"[bold cyan]MAINTENANCE REPORT[/bold cyan] {report.id} -- {health_label(report.overall_health.value)}"
    )
    console.print(f"[dim]{report.period}[/dim]")
    console.print()

    table = Table(show_header=False, pad_edge=True)
    table.add_column("Metric", min_width=20)
    table.add_column("Value", justify="right")
    table.add_row("Tests", str(summary.total_tests))
    table.add_row("Failing", str(summary.failing_tests))
    table.add_row("Flaky", str(summary.flaky_tests))
    table.add_row("Average duration", f"{summary.average_duration.total_seconds():.3f}s")
    table.add_row("Regressions", str(len(report.regressions)))
    table.add_row("Open regressions", str(len(report.open_regressions)))
    table.add_row("Actions", str(len(report.maintenance_actions)))
    console.print(table)

    if report.maintenance_actions:
        actions = Table(show_header=True, pad_edge=True)
        actions.add_column("Action")
        actions.add_column("Target")
        actions.add_column("Status")
        actions.add_column("Changes")
        for action in report.maintenance_actions:
            status = action.status.value
            if action.error:
                status = f"[red]{status}[/red]"
            actions.add_row(
                action.type.value,
                escape(action.target),
                status,
                escape("\n".join(action.changes)),
            )
        console.print(actions)

    trend = report.trend_analysis
    console.print(
        f"\nTrends: performance {trend.performance_trend.value}, quality {trend.quality_trend.value}, "
        f"maintenance {trend.maintenance_frequency.value} (confidence {trend.confidence:.0%})"
    )
    if report.recommendations:
        console.print("\n[bold]Recommendations[/bold]")
        for line in report.recommendations:
            console.print(f"  - {escape(line)}")
    for error in report.errors:
        console.print(f"[red]error:[/red] {escape(error)}")
    console.print()


@app.command()
def maintain(
    ctx: typer.Context,
    apply: bool = typer.Option(
        False,
        "--apply",
        help="Write changes to disk (default: plan only)",
    ),
    json_output: bool = typer.Option(
        False,
        "--json",
        help="Output in machine-readable JSON format",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose logging",
    ),
    config: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Configuration file (TOML)",
        exists=True,
        file_okay=True,
        dir_okay=False,
    ),
):
    """
    Run the test suite once and perform one maintenance cycle.

    [bold cyan]Examples:[/bold cyan]

      testwarden maintain

      testwarden maintain --apply

      testwarden maintain --json
    """
    setup_logging(verbose=verbose, quiet=json_output)
    settings = resolve_config(ctx, config=config, apply_changes=apply or None)
    infra = SelfMaintainingTestInfrastructure(settings)
    report = infra.run_maintenance()

    if json_output:
        print_json(report.to_dict())
    else:
        render_report(report)
    if report.errors:
        raise typer.Exit(1)


@app.command()
def run(
    ctx: typer.Context,
    duration: Optional[float] = typer.Option(
        None,
        "--duration",
        help="Stop after this many seconds (default: until interrupted)",
        min=0,
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose logging",
    ),
    config: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Configuration file (TOML)",
        exists=True,
        file_okay=True,
        dir_okay=False,
    ),
):
    """
    Run the maintenance, health and scheduler loops in the foreground.

    [bold cyan]Examples:[/bold cyan]

      testwarden run

      testwarden run --duration 3600
    """
    logger = setup_logging(verbose=verbose)
    settings = resolve_config(ctx, config=config)
    infra = SelfMaintainingTestInfrastructure(settings)
    infra.start()
    console.print(
        f"[bold cyan]testwarden[/bold cyan] watching {settings.root_path} "
        f"(maintenance every {settings.maintenance_interval}, health every {settings.health_check_interval})"
    )
    deadline = time.monotonic() + duration if duration is not None else None
    try:
        while deadline is None or time.monotonic() < deadline:
            time.sleep(0.5)
    except KeyboardInterrupt:
        logger.info("Interrupted")
    finally:
        infra.stop()

    latest = infra.report_generator.latest()
    if latest is not None:
        render_report(latest)
