"""Generate CLI command -- synthesize Go test files from source."""

from pathlib import Path
from typing import Optional

import typer
from rich.markup import escape
from rich.table import Table

from ..exceptions import TestWardenError
from ..logging_config import setup_logging
from ..synthesis.generator import AutomatedTestGenerator, write_generated_files
from . import app
from ._common import console, print_json, resolve_config


@app.command()
def generate(
    ctx: typer.Context,
    target: Optional[Path] = typer.Argument(
        None,
        help="Go file or directory (default: project root)",
        exists=True,
        readable=True,
    ),
    naming: Optional[str] = typer.Option(
        None,
        "--naming",
        help="Test file layout: suffix, package or parallel",
    ),
    framework: Optional[str] = typer.Option(
        None,
        "--framework",
        help="Assertion style: testify or standard",
    ),
    benchmarks: Optional[bool] = typer.Option(
        None,
        "--benchmarks/--no-benchmarks",
        help="Generate benchmarks for complex functions",
    ),
    examples: Optional[bool] = typer.Option(
        None,
        "--examples/--no-examples",
        help="Generate Example functions for exported functions",
    ),
    write: bool = typer.Option(
        False,
        "--write",
        help="Write generated files (default: only report them)",
    ),
    overwrite: bool = typer.Option(
        False,
        "--overwrite",
        help="Replace existing test files when writing",
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
    Generate Go tests for a file or every Go file under a directory.

    [bold cyan]Examples:[/bold cyan]

      testwarden generate ./pkg/parser

      testwarden generate service.go --naming parallel --write

      testwarden generate --json
    """
    logger = setup_logging(verbose=verbose, quiet=json_output)
    settings = resolve_config(
        ctx,
        config=config,
        generation={
            "test_file_naming": naming,
            "testing_framework": framework,
            "generate_benchmark_tests": benchmarks,
            "generate_example_tests": examples,
        },
    )
    target = target or settings.root_path

    generator = AutomatedTestGenerator(settings.generation)
    try:
        if target.is_dir():
            result = generator.generate_for_directory(target)
        else:
            result = generator.generate_for_file(target)
        written = write_generated_files(result, overwrite=overwrite) if write else []
    except TestWardenError as e:
        logger.debug("Generation failed", exc_info=True)
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(1)

    if json_output:
        print_json(
            {
                "generated_files": sorted(result.generated_files),
                "written": [str(p) for p in written],
                "coverage": result.coverage.to_dict(),
                "statistics": result.statistics.to_dict(),
                "warnings": list(result.warnings),
                "errors": list(result.errors),
            }
        )
        raise typer.Exit(1 if result.errors and not result.generated_files else 0)

    stats = result.statistics
    console.print()
    console.print(
        f"[bold cyan]TEST GENERATION[/bold cyan] -- {stats.files_analyzed} files, "
        f"{stats.functions_analyzed} functions"
    )
    console.print()

    if result.suites:
        table = Table(show_header=True, pad_edge=True)
        table.add_column("Test file", min_width=24)
        table.add_column("Cases", justify="right")
        table.add_column("Mocks", justify="right")
        table.add_column("Coverage", justify="right")
        for suite in result.suites:
            if suite.file_name not in result.generated_files:
                continue
            table.add_row(
                suite.file_name,
                str(len(suite.test_cases)),
                str(len(suite.mocks)),
                f"{suite.coverage.estimated_coverage:.0f}%",
            )
        console.print(table)

    coverage = result.coverage
    style = "green" if coverage.meets_target else "yellow"
    console.print(
        f"\nEstimated coverage: [{style}]{coverage.estimated_coverage:.1f}%[/{style}] "
        f"(target {coverage.target_coverage:.0f}%)"
    )
    for gap in coverage.test_gaps[:10]:
        console.print(f"  [dim]gap:[/dim] {escape(gap)}")
    for warning in result.warnings:
        console.print(f"[yellow]warning:[/yellow] {escape(warning)}")
    for error in result.errors:
        console.print(f"[red]error:[/red] {escape(error)}")

    if write:
        console.print(f"\nWrote {len(written)} of {len(result.generated_files)} files")
    elif result.generated_files:
        console.print("\n[dim]Nothing written; pass --write to create the files.[/dim]")
