"""Shared CLI helpers."""

import json
from pathlib import Path
from typing import Any, Optional

import typer
from rich.console import Console

from ..config import InfrastructureConfig, load_config
from ..exceptions import ConfigurationError

console = Console()

HEALTH_STYLES = {
    "healthy": "green",
    "warning": "yellow",
    "critical": "red",
    "unknown": "dim",
}


def resolve_config(
    ctx: typer.Context,
    config: Optional[Path] = None,
    generation: Optional[dict[str, Any]] = None,
    **overrides: Any,
) -> InfrastructureConfig:
    """Build configuration from CLI options; exits with status 2 when invalid."""
    root: Path = (ctx.obj or {}).get("path", Path.cwd())
    overrides = {k: v for k, v in overrides.items() if v is not None}
    if generation:
        overrides["generation"] = {k: v for k, v in generation.items() if v is not None}
    try:
        return load_config(config_file=config, project_root=str(root), **overrides)
    except ConfigurationError as e:
        console.print(f"[red]Configuration error:[/red] {e}")
        raise typer.Exit(2)


def print_json(value: Any) -> None:
    print(json.dumps(value, indent=2))


def health_label(status: str) -> str:
    style = HEALTH_STYLES.get(status, "dim")
    return f"[{style}]{status.upper()}[/{style}]"
