"""pagepilot run -- Plan a natural-language instruction and execute it.

Resolves config, loads the site manifest, discovers the operations on the
target page, asks the configured text backend to pick one, and runs it
through the policy gate and executor.  High-risk operations stop for an
explicit yes/no from the human (or --yes).

Exit codes: 0 success, 1 failed outcome, 2 config error, 3 infrastructure
error (backend unreachable, browser failure).
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from urllib.parse import urlsplit

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel

from pagepilot.config import (
    PagePilotConfig,
    PagePilotConfigError,
    load_project_config,
    resolve_project_dir,
)
from pagepilot.credentials import mask_key, resolve_api_key
from pagepilot.engine.action_executor import ActionExecutor, ExecutionResult
from pagepilot.engine.backends import BackendError, create_backend
from pagepilot.engine.documents import open_session
from pagepilot.engine.manifest import Manifest, ManifestError
from pagepilot.engine.planner import Planner, PlannerError
from pagepilot.engine.prompt_builder import build_page_summaries, build_site_actions
from pagepilot.engine.response_parser import ActionOutcome, PlannerOutcome
from pagepilot.models import MODELS

console = Console(stderr=True)
output_console = Console()  # stdout for machine-readable output

logger = logging.getLogger("pagepilot.cli.run")

_BACKENDS = ("anthropic", "ollama")


# ── Shared error printer ──────────────────────────────────────────────────


def _print_error(message: str, title: str = "Error") -> None:
    console.print(Panel(f"[red]{escape(message)}[/red]", title=f"[red]{title}[/red]", border_style="red"))


# ── Config builder ────────────────────────────────────────────────────────


def _build_config(
    project_dir: Path,
    url: str | None,
    manifest: Path | None,
    backend: str | None,
    model: str | None,
    headless: bool | None,
) -> PagePilotConfig:
    """Config from .pagepilot/config.yaml (if present) with CLI overrides applied."""
    config = load_project_config(project_dir)

    if manifest is not None:
        config.manifest_path = manifest
    if backend is not None:
        if backend not in _BACKENDS:
            raise PagePilotConfigError(
                f"Unknown backend: {backend}\n\nExpected one of: {', '.join(_BACKENDS)}"
            )
        config.backend = backend
        if backend == "ollama" and config.model == MODELS["planner"]:
            config.model = MODELS["ollama"]
    if model is not None:
        config.model = model
    if headless is not None:
        config.headless = headless

    if config.manifest_path is None:
        raise PagePilotConfigError(
            "No manifest configured\n\n"
            "To fix: pass --manifest path/to/agent-manifest.json\n"
            "  or: set manifest: in .pagepilot/config.yaml"
        )
    if not url and not config.base_url:
        raise PagePilotConfigError(
            "No target page\n\n"
            "To fix: pass --url http://localhost:5173/\n"
            "  or: set base_url: in .pagepilot/config.yaml"
        )
    return config


# ── Output ────────────────────────────────────────────────────────────────


def _print_result(result: ExecutionResult) -> None:
    status = result.status
    lines = [f"[bold]Status:[/bold]  {status}"]
    if result.action:
        lines.append(f"[bold]Action:[/bold]  {escape(result.action)}")

    if status == "answered":
        lines += ["", escape(str(result.result))]
    elif status == "navigated":
        lines.append(f"[bold]Page:[/bold]    {escape(str(result.result))}")
    elif status == "completed" and result.result:
        lines.append("")
        for output, text in result.result.items():
            lines.append(f"  {escape(output or 'status')}: {escape(text)}")
    elif status == "awaiting_review":
        lines += ["", "[yellow]Fields filled. Review the form and submit it yourself.[/yellow]"]

    if result.error:
        lines += ["", f"[red]{escape(result.error)}[/red]"]
    if result.missing_fields:
        lines.append(f"[bold]Missing:[/bold] {escape(', '.join(result.missing_fields))}")

    if result.log is not None:
        lines += ["", "[dim]Log:[/dim]"]
        for step in result.log.steps:
            detail = step.to_dict()
            kind = detail.pop("type")
            summary = ", ".join(f"{k}={v}" for k, v in detail.items())
            lines.append(f"  [dim]{kind}[/dim] {escape(summary)}")

    border = "green" if result.ok else ("yellow" if status in ("needs_confirmation", "cancelled") else "red")
    console.print(Panel("\n".join(lines), title="[bold cyan]PagePilot Run[/bold cyan]", border_style=border))


def _confirm(result: ExecutionResult, assume_yes: bool) -> bool:
    if assume_yes:
        return True
    meta = result.confirmation_metadata or {}
    console.print(
        Panel(
            f"[bold]{escape(str(meta.get('title', result.action)))}[/bold]\n\n"
            f"Action: {escape(str(meta.get('action', '')))}\n"
            f"Risk:   [red]{escape(str(meta.get('risk', '')))}[/red]\n"
            f"Scope:  {escape(str(meta.get('scope', '')))}",
            title="[yellow]Confirmation Required[/yellow]",
            border_style="yellow",
        )
    )
    return typer.confirm("Proceed?", default=False, err=True)


def _execute(
    executor: ActionExecutor,
    outcome: PlannerOutcome,
    assume_yes: bool,
) -> ExecutionResult:
    result = executor.run_outcome(outcome)
    if result.status != "needs_confirmation" or not isinstance(outcome, ActionOutcome):
        return result
    if _confirm(result, assume_yes):
        return executor.run_outcome(outcome, confirmed=True)
    return executor.decline(outcome.request.action)


# ── Main command ──────────────────────────────────────────────────────────


def run(
    instruction: str = typer.Argument(..., help="What to do, in plain language."),
    url: str | None = typer.Option(
        None,
        "--url",
        "-u",
        help="Page URL or local HTML file to start on. Default: base_url from config.",
    ),
    manifest: Path | None = typer.Option(
        None,
        "--manifest",
        "-m",
        help="Site manifest (JSON or YAML). Default: manifest from config.",
    ),
    backend: str | None = typer.Option(
        None,
        "--backend",
        "-b",
        help="Text backend: anthropic or ollama. Default from config.",
    ),
    model: str | None = typer.Option(None, "--model", help="Model name for the backend."),
    yes: bool = typer.Option(
        False,
        "--yes",
        "-y",
        help="Confirm high-risk operations without prompting.",
    ),
    as_json: bool = typer.Option(False, "--json", help="Print the result as JSON on stdout."),
    headless: bool | None = typer.Option(
        None,
        "--headless/--headed",
        help="Run the browser headless. Default comes from config (headless).",
    ),
) -> None:
    """Plan INSTRUCTION with the model and execute it on the page.

    \b
    Examples:
      pagepilot run "create an invoice for bob@example.com for 150 EUR" \\
          --url http://localhost:5173/invoices/new -m agent-manifest.json
      pagepilot run "delete the workspace" --yes --json
    """
    project_dir = resolve_project_dir()

    try:
        config = _build_config(project_dir, url, manifest, backend, model, headless)
    except PagePilotConfigError as exc:
        _print_error(str(exc), "Config Error")
        raise typer.Exit(code=2)

    try:
        site = Manifest.from_file(config.manifest_path)
    except ManifestError as exc:
        _print_error(str(exc), "Manifest Error")
        raise typer.Exit(code=2)

    if config.backend == "anthropic":
        try:
            config.anthropic_api_key = resolve_api_key(project_dir)
        except PagePilotConfigError as exc:
            _print_error(str(exc), "API Key Error")
            raise typer.Exit(code=2)
        logger.debug("Using Anthropic key %s", mask_key(config.anthropic_api_key))

    planner = Planner(create_backend(config), max_attempts=config.max_attempts)
    target = url or config.base_url

    try:
        with open_session(
            target,
            headless=config.headless,
            timeout=config.timeout,
            base_url=config.base_url or "http://localhost",
        ) as session:
            executor = ActionExecutor(
                session,
                site,
                base_url=config.base_url,
                settle_seconds=config.settle_seconds,
            )
            catalog = executor.discover()
            current_path = urlsplit(session.url()).path or "/"
            outcome = planner.plan(
                instruction,
                catalog,
                valid_routes=site.routes(),
                site_actions=build_site_actions(site, catalog.action_names()),
                pages=build_page_summaries(site, current_path),
            )
            result = _execute(executor, outcome, yes)
    except PlannerError as exc:
        _print_error(f"Could not turn the instruction into an action:\n{exc}", "Planner Error")
        raise typer.Exit(code=1)
    except BackendError as exc:
        _print_error(str(exc), "Backend Error")
        raise typer.Exit(code=3)
    except KeyboardInterrupt:
        console.print("\n[yellow]Run interrupted by user.[/yellow]")
        raise typer.Exit(code=1)
    except Exception as exc:
        logger.exception("Unexpected error during run")
        _print_error(
            f"Unexpected error: {exc}\n\nRun with --verbose for full traceback.",
            "Infrastructure Error",
        )
        raise typer.Exit(code=3)

    if config.logs_dir is not None and result.log is not None:
        path = result.log.save(config.logs_dir)
        logger.info("Execution log written to %s", path)

    if as_json:
        output_console.print(
            json.dumps(result.to_dict(), indent=2, default=str),
            markup=False,
            highlight=False,
            soft_wrap=True,
        )
    else:
        _print_result(result)

    if not result.ok:
        raise typer.Exit(code=1)
