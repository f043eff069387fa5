"""pagepilot validate -- Check a site manifest without touching a page.

Loads the manifest, which rejects any input or output schema that is not
itself valid JSON Schema, then reports policy smells: high-risk operations
that do not require confirmation, pages listing unknown operations and
operations no page hosts.  Zero cost: no browser, no model calls.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel

from pagepilot.engine.annotations import segment_count
from pagepilot.engine.manifest import Manifest, ManifestError

console = Console(stderr=True)

# ── Severity ordering ─────────────────────────────────────────────────────

_SEVERITY_ORDER = {"error": 0, "warning": 1, "info": 2}


# ── Validation helpers ────────────────────────────────────────────────────


def lint_manifest(manifest: Manifest) -> list[dict[str, Any]]:
    """Return issue dicts ({severity, field, message}) for a loaded manifest."""
    issues: list[dict[str, Any]] = []

    for op_id, contract in manifest.actions.items():
        if segment_count(op_id) > 2:
            issues.append({
                "severity": "warning",
                "field": f"actions.{op_id}",
                "message": "More than two segments: this id is a submit sub-operation, never a top-level action",
            })
        undeclared = [name for name in contract.required_fields if name not in contract.properties]
        if undeclared:
            issues.append({
                "severity": "warning",
                "field": f"actions.{op_id}.input_schema.required",
                "message": f"Required but not declared in properties: {', '.join(undeclared)}",
            })
        if contract.risk == "high" and contract.confirmation != "required":
            issues.append({
                "severity": "warning",
                "field": f"actions.{op_id}.confirmation",
                "message": f'High-risk action has confirmation "{contract.confirmation}" -- it will run without consent',
            })
        if manifest.pages and manifest.page_for_action(op_id) is None:
            issues.append({
                "severity": "info",
                "field": f"actions.{op_id}",
                "message": "Not listed on any page; the runtime cannot navigate to it",
            })

    for route, page in manifest.pages.items():
        if not route.startswith("/"):
            issues.append({
                "severity": "error",
                "field": f"pages.{route}",
                "message": "Page route must be an absolute path starting with /",
            })
        for op_id in page.actions:
            if op_id not in manifest.actions:
                issues.append({
                    "severity": "error",
                    "field": f"pages.{route}.actions",
                    "message": f'Unknown action "{op_id}"',
                })
        for view_id in page.data:
            if view_id not in manifest.data:
                issues.append({
                    "severity": "warning",
                    "field": f"pages.{route}.data",
                    "message": f'Unknown data view "{view_id}"',
                })

    return issues


def _print_issues(path: Path, issues: list[dict[str, Any]]) -> None:
    errors = [i for i in issues if i["severity"] == "error"]
    warnings = [i for i in issues if i["severity"] == "warning"]

    if not issues:
        console.print(f"  [green]✓[/green] [dim]{escape(str(path))}[/dim]  [green]OK[/green]")
        return

    if errors:
        status = f"[bold red]{len(errors)} error(s)[/bold red]"
        if warnings:
            status += f", [yellow]{len(warnings)} warning(s)[/yellow]"
        console.print(f"  [red]✗[/red] [bold]{escape(str(path))}[/bold]  {status}")
    else:
        console.print(f"  [yellow]![/yellow] [dim]{escape(str(path))}[/dim]  [yellow]{len(warnings)} warning(s)[/yellow]")

    for issue in sorted(issues, key=lambda i: _SEVERITY_ORDER.get(i["severity"], 99)):
        sev_label = {
            "error": "[bold red]ERROR[/bold red]",
            "warning": "[yellow]WARN[/yellow]",
            "info": "[dim]INFO[/dim]",
        }.get(issue["severity"], issue["severity"])
        field = issue.get("field", "")
        field_str = f"[dim] ({escape(field)})[/dim]" if field else ""
        console.print(f"      {sev_label}{field_str}  {escape(issue['message'])}")


# ── Main command ──────────────────────────────────────────────────────────


def validate(
    manifest_path: Path = typer.Argument(..., help="Site manifest (JSON or YAML)."),
    strict: bool = typer.Option(
        False,
        "--strict",
        help="Exit 1 on warnings as well as errors (default: exit 1 on errors only).",
    ),
) -> None:
    """Validate a site manifest without executing anything.

    \b
    Examples:
      pagepilot validate agent-manifest.json
      pagepilot validate agent-manifest.yaml --strict
    """
    if not manifest_path.is_file():
        console.print(
            Panel(
                f"[red]Manifest not found:[/red] {escape(str(manifest_path))}",
                title="[red]Config Error[/red]",
                border_style="red",
            )
        )
        raise typer.Exit(code=2)

    try:
        manifest = Manifest.from_file(manifest_path)
    except ManifestError as exc:
        issues = [{"severity": "error", "field": "root", "message": str(exc)}]
    else:
        issues = lint_manifest(manifest)

    _print_issues(manifest_path, issues)

    total_errors = sum(1 for i in issues if i["severity"] == "error")
    total_warnings = sum(1 for i in issues if i["severity"] == "warning")

    console.print()
    if total_errors == 0 and total_warnings == 0:
        console.print(Panel("[bold green]Manifest valid. No errors or warnings.[/bold green]", border_style="green"))
    elif total_errors > 0:
        console.print(
            Panel(
                f"[bold red]Validation failed.[/bold red]  "
                f"{total_errors} error(s), {total_warnings} warning(s)",
                border_style="red",
            )
        )
        raise typer.Exit(code=1)
    elif strict:
        console.print(
            Panel(
                f"[bold yellow]Validation warnings found (--strict mode).[/bold yellow]  "
                f"{total_warnings} warning(s)",
                border_style="yellow",
            )
        )
        raise typer.Exit(code=1)
    else:
        console.print(
            Panel(
                f"[yellow]Validation passed with {total_warnings} warning(s).[/yellow]  "
                "Use [bold]--strict[/bold] to fail on warnings.",
                border_style="yellow",
            )
        )
