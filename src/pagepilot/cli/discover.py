"""pagepilot discover -- Print the operations annotated on a page.

Works on a live URL (Chromium via Playwright) or a local HTML file (parsed
with lxml, no browser needed).  No model calls.
"""

from __future__ import annotations

import json
import logging

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from pagepilot.config import PagePilotConfigError, load_project_config, resolve_project_dir
from pagepilot.engine.discovery import ActionCatalog, DiscoveredLink, build_catalog, detect, discover_links
from pagepilot.engine.documents import open_session

console = Console(stderr=True)
output_console = Console()  # stdout for machine-readable output

logger = logging.getLogger("pagepilot.cli.discover")


def _print_catalog(catalog: ActionCatalog, links: list[DiscoveredLink]) -> None:
    table = Table(title=f"Operations on {catalog.url or 'page'}", border_style="cyan")
    table.add_column("Action", style="bold")
    table.add_column("Risk")
    table.add_column("Confirm")
    table.add_column("Fields")
    table.add_column("Submit")

    for op in catalog.actions:
        fields = []
        for f in op.fields:
            label = f"{f.field} ({f.tag_name})"
            if f.options:
                label += f" [{', '.join(f.options)}]"
            fields.append(label)
        risk = f"[red]{op.danger}[/red]" if op.danger == "high" else (op.danger or "-")
        table.add_row(
            op.action,
            risk,
            op.confirm or "-",
            escape("\n".join(fields)) or "-",
            op.submit_action or "-",
        )
    console.print(table)

    if links:
        console.print()
        console.print("[bold]Links:[/bold]")
        for link in links:
            console.print(f"  {escape(link.page)}  [dim]{escape(link.text)}[/dim]", highlight=False)


def discover(
    target: str = typer.Argument(..., help="Page URL or path to a local HTML file."),
    as_json: bool = typer.Option(False, "--json", help="Print the catalog as JSON on stdout."),
    headless: bool | None = typer.Option(
        None,
        "--headless/--headed",
        help="Run the browser headless. Default comes from config (headless).",
    ),
) -> None:
    """Discover annotated operations on TARGET and print them.

    \b
    Examples:
      pagepilot discover http://localhost:5173/invoices/new
      pagepilot discover ./dist/index.html --json
    """
    try:
        config = load_project_config(resolve_project_dir())
    except PagePilotConfigError as exc:
        console.print(Panel(f"[red]{exc}[/red]", title="[red]Config Error[/red]", border_style="red"))
        raise typer.Exit(code=2)

    try:
        with open_session(
            target,
            headless=config.headless if headless is None else headless,
            timeout=config.timeout,
            base_url=config.base_url or "http://localhost",
        ) as session:
            root = session.root()
            annotated = detect(root)
            catalog = build_catalog(root, url=session.url())
            links = discover_links(root)
    except Exception as exc:
        logger.exception("Could not load %s", target)
        console.print(
            Panel(
                f"[red]Could not load page:[/red] {exc}\n\n"
                "Run with [bold]--verbose[/bold] for full traceback.",
                title="[red]Infrastructure Error[/red]",
                border_style="red",
            )
        )
        raise typer.Exit(code=3)

    if as_json:
        data = catalog.to_dict()
        data["links"] = [link.to_dict() for link in links]
        output_console.print(json.dumps(data, indent=2), markup=False, highlight=False, soft_wrap=True)
        return

    if not annotated:
        console.print(
            Panel(
                "[yellow]No agent annotations found on this page.[/yellow]\n\n"
                "Annotate elements with data-agent-kind / data-agent-action.",
                title="Nothing Discovered",
                border_style="yellow",
            )
        )
        return

    _print_catalog(catalog, links)
