"""Status CLI command -- run the suite once and show component health."""

from pathlib import Path
from typing import Optional

import typer
from rich.markup import escape
from rich.table import Table

from ..exceptions import TestRunnerError
from ..logging_config import setup_logging
from ..maintenance.infrastructure import SelfMaintainingTestInfrastructure
from . import app
from ._common import console, health_label, print_json, resolve_config


@app.command()
def status(
    ctx: typer.Context,
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
    Show the health of the test suite and its dependencies.

    Runs the test command once, analyzes go.mod and prints the health of
    each component. Nothing is changed on disk.

    [bold cyan]Examples:[/bold cyan]

      testwarden status

      testwarden -C ~/src/service status --json
    """
    logger = setup_logging(verbose=verbose, quiet=json_output)
    settings = resolve_config(ctx, config=config)
    infra = SelfMaintainingTestInfrastructure(settings)

    try:
        infra.monitor.add_metrics(infra.runner.collect())
    except TestRunnerError as e:
        logger.error(f"Test run failed: {e}")
    infra.dependency_analyzer.analyze_dependencies()
    health = infra.perform_health_check()

    if json_output:
        print_json(infra.get_current_status())
        return

    console.print()
    console.print(f"[bold cyan]STATUS[/bold cyan] {settings.root_path} -- {health_label(health.overall_health.value)}")
    console.print()

    table = Table(show_header=True, pad_edge=True)
    table.add_column("Component", min_width=16)
    table.add_column("Health")
    for component, component_status in health.components.items():
        table.add_row(component, health_label(component_status.value))
    console.print(table)

    for issue in health.issues:
        console.print(f"  {health_label(issue.severity.value)} {escape(issue.description)}")

    metrics = Table(show_header=False, pad_edge=True)
    metrics.add_column("Metric", min_width=24)
    metrics.add_column("Value", justify="right")
    for name, value in health.metrics.items():
        metrics.add_row(name.replace("_", " "), f"{value:g}")
    console.print(metrics)
    console.print()
