"""testwarden command-line app: generate, maintain, run and status."""

import typer

app = typer.Typer(
    name="testwarden",
    help="testwarden - self-maintaining test infrastructure for Go projects",
    add_completion=False,
    rich_markup_mode="rich",
)


# Subcommand modules register themselves on import
from .main import main as _main_callback  # noqa: F401, E402
from .generate import generate as _generate  # noqa: F401, E402
from .maintain import maintain as _maintain, run as _run  # noqa: F401, E402
from .status import status as _status  # noqa: F401, E402


def main() -> None:
    app()
