"""PagePilot CLI -- Main Typer entry point.

Registers all subcommands and provides --version / --verbose global options.
"""

from __future__ import annotations

import typer
from rich.console import Console

from pagepilot import __version__

TAGLINE = "Plan in plain language. Execute only what the page declares."

console = Console()

# ── Version callback ──────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"PagePilot v{__version__}", style="bold cyan")
        console.print(f"  {TAGLINE}", style="dim")
        raise typer.Exit()


# ── Main app ──────────────────────────────────────────────────────────────

app = typer.Typer(
    name="pagepilot",
    help=f"PagePilot -- {TAGLINE}",
    rich_markup_mode="rich",
    no_args_is_help=True,
    add_completion=False,
)


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        help="Show PagePilot version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose output.",
    ),
) -> None:
    """PagePilot -- safe, auditable execution of model-planned actions on annotated web pages."""
    if verbose:
        import logging

        logging.basicConfig(level=logging.DEBUG, format="%(name)s  %(message)s")


# ── Register subcommands ──────────────────────────────────────────────────

from pagepilot.cli.discover import discover  # noqa: E402
from pagepilot.cli.run import run  # noqa: E402
from pagepilot.cli.validate import validate  # noqa: E402

app.command(name="discover", help="List the operations annotated on a page or HTML file.")(discover)
app.command(name="run", help="Plan an instruction with the model and execute it on the page.")(run)
app.command(name="validate", help="Validate a site manifest without touching a page (zero cost).")(validate)
