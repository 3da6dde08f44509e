"""Top-level callback: global options shared by all subcommands."""

from pathlib import Path
from typing import Optional

import typer

from . import app
from ._common import console


@app.callback(invoke_without_command=True, no_args_is_help=True)
def main(
    ctx: typer.Context,
    path: Optional[Path] = typer.Option(
        None,
        "-C",
        "--path",
        help="Go project root (default: current directory)",
        exists=True,
        file_okay=False,
        dir_okay=True,
        readable=True,
    ),
    version: bool = typer.Option(
        False,
        "--version",
        help="Show version and exit",
    ),
):
    """
    Generate Go tests from source and keep the test suite healthy.

    [bold cyan]Examples:[/bold cyan]

      testwarden generate ./pkg

      testwarden -C ~/src/service maintain --json

      testwarden status
    """
    ctx.ensure_object(dict)
    ctx.obj["path"] = (Path(path) if path else Path.cwd()).resolve()

    if version:
        from .. import __version__

        console.print(f"[bold cyan]testwarden[/bold cyan] version [green]{__version__}[/green]")
        raise typer.Exit(0)
