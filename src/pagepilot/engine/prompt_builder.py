"""Prompt construction for the planner.

The system prompt lists the operations discovered on the current page (and,
optionally, operations and pages elsewhere on the site) and constrains the
model to a single JSON object with semantic names only.  The model decides
intent and arguments; the runtime decides execution.
"""

from __future__ import annotations

import dataclasses

from pagepilot.engine.discovery import ActionCatalog, DiscoveredOperation
from pagepilot.engine.manifest import Manifest


@dataclasses.dataclass
class SiteActionSummary:
    """An operation that lives on another page."""

    action: str
    title: str
    page: str
    page_title: str
    risk: str
    confirmation: str
    fields: list[str]
    description: str = ""


@dataclasses.dataclass
class PageSummary:
    route: str
    title: str
    description: str = ""
    has_actions: bool = False
    has_data: bool = False


_RULES = """RULES:
1. Respond with EXACTLY this JSON format: {"action": "<action_name>", "args": {<field_name>: <value>}}
2. Use ONLY action names and field names listed above. Never invent new ones.
3. NEVER include CSS selectors, XPath, or DOM references in your response.
4. If a field expects a specific type (number, email), use that type.
5. NEVER use null for a field you can infer. Omit fields you know nothing about.
6. Always include ALL fields you can infer from the user's message.
7. If the user is asking an informational question rather than requesting an action, respond with: {"action": "none", "answer": "<concise answer based on the available actions and page data>"}
8. If you cannot map the request to an available action AND it is not a question, respond with: {"action": "none", "args": {}, "error": "<reason>"}
9. For destructive actions (high risk), include "confirmed": false in your response."""

_NAV_RULE = (
    '10. If the action the user wants lives on another page, or the user asks to go '
    'somewhere, respond with: {"navigate": "<route>"} using a route EXACTLY as listed '
    "under Pages. Never shorten or invent routes."
)


def build_system_prompt(
    catalog: ActionCatalog,
    page_data: str | None = None,
    site_actions: list[SiteActionSummary] | None = None,
    pages: list[PageSummary] | None = None,
) -> str:
    action_descriptions = "\n\n".join(describe_action(op) for op in catalog.actions) or "(none)"

    sections = [
        "You are an agent that helps users interact with web applications.",
        "You MUST respond with a single JSON object. No text before or after the JSON.",
        "",
        "Available actions on this page:",
        "",
        action_descriptions,
    ]
    if page_data:
        sections += ["", "Data visible on this page:", "", page_data]
    if site_actions:
        sections += ["", "Actions on other pages (navigate there first):", ""]
        sections += [_describe_site_action(a) for a in site_actions]
    if pages:
        sections += ["", "Pages:", ""]
        sections += [_describe_page(p) for p in pages]

    sections += ["", _RULES]
    if site_actions or pages:
        sections.append(_NAV_RULE)
    return "\n".join(sections)


def describe_action(op: DiscoveredOperation) -> str:
    meta = []
    if op.danger:
        meta.append(f"risk: {op.danger}")
    if op.confirm:
        meta.append(f"confirmation: {op.confirm}")
    if op.scope:
        meta.append(f"scope: {op.scope}")
    if op.idempotent:
        meta.append(f"idempotent: {op.idempotent}")

    field_lines = []
    for f in op.fields:
        opts = f" [options: {', '.join(f.options)}]" if f.options else ""
        field_lines.append(f"    - {f.field} ({f.tag_name}){opts}")

    return (
        f"ACTION: {op.action}\n"
        f"  {' | '.join(meta)}\n"
        f"  Fields:\n"
        + ("\n".join(field_lines) if field_lines else "    (none)")
    )


def build_user_prompt(user_message: str) -> str:
    return (
        f'User request: "{user_message}"\n\n'
        "Respond with a JSON object mapping this request to one of the available actions."
    )


def build_site_actions(manifest: Manifest, current_action_names: list[str]) -> list[SiteActionSummary]:
    """Summaries of manifest operations that are NOT on the current page."""
    results: list[SiteActionSummary] = []
    for op_id, contract in manifest.actions.items():
        if op_id in current_action_names:
            continue
        route = manifest.page_for_action(op_id)
        if route is None:
            continue
        page = manifest.pages[route]
        results.append(
            SiteActionSummary(
                action=op_id,
                title=contract.title,
                description=contract.description,
                page=route,
                page_title=page.title,
                risk=contract.risk,
                confirmation=contract.confirmation,
                fields=list(contract.properties),
            )
        )
    return results


def build_page_summaries(manifest: Manifest, current_path: str) -> list[PageSummary]:
    """Every manifest page except the current one."""
    current = current_path.rstrip("/")
    return [
        PageSummary(
            route=route,
            title=page.title,
            description=page.description,
            has_actions=bool(page.actions),
            has_data=bool(page.data),
        )
        for route, page in manifest.pages.items()
        if route.rstrip("/") != current
    ]


def _describe_site_action(a: SiteActionSummary) -> str:
    fields = ", ".join(a.fields) or "(none)"
    return (
        f"- {a.action} ({a.title}) on {a.page} [{a.page_title}] "
        f"risk: {a.risk} | confirmation: {a.confirmation} | fields: {fields}"
    )


def _describe_page(p: PageSummary) -> str:
    tags = []
    if p.has_actions:
        tags.append("actions")
    if p.has_data:
        tags.append("data")
    suffix = f" ({', '.join(tags)})" if tags else ""
    desc = f" -- {p.description}" if p.description else ""
    return f"- {p.route}: {p.title}{desc}{suffix}"
