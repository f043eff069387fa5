"""Response extractor -- turns raw model text into a typed planner outcome.

Handles the usual model quirks: markdown code fences, preamble and trailing
prose, ``{"action": "navigate", ...}`` instead of ``{"navigate": ...}``, and
several key names for the navigation target.  The result is one of three
outcomes:

- :class:`ActionOutcome`   -- an executable request (operation id + args)
- :class:`NavigateOutcome` -- a normalized absolute page path
- :class:`AnswerOutcome`   -- free text for display only, never executed

Anything else raises :class:`ResponseParseError`, which the planner treats as
retryable.
"""

from __future__ import annotations

import dataclasses
import json
import re
from typing import Any, Union
from urllib.parse import urlsplit

from jsonschema import Draft7Validator

_FENCE_RE = re.compile(r"```(?:[\w+-]+)?[ \t]*\n?([\s\S]*?)\n?```")

NAVIGATE_KEYS = ("page", "route", "path", "target", "url", "destination", "to")

# Executable request contract: semantic operation id + args, nothing else.
PLANNER_REQUEST_SCHEMA: dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "required": ["action", "args"],
    "additionalProperties": False,
    "properties": {
        "action": {"type": "string", "pattern": r"^[a-z][a-z0-9-]*(\.[a-z][a-z0-9-]*)*$"},
        "args": {"type": "object"},
        "confirmed": {"type": "boolean"},
    },
}

_request_validator = Draft7Validator(PLANNER_REQUEST_SCHEMA)

_SELECTOR_PATTERNS = (
    re.compile(r"^[.#][A-Za-z_][\w-]*"),  # .class or #id
    re.compile(r"^\[[\w-]+\s*[~|^$*]?="),  # [attr=value]
)


class ResponseParseError(Exception):
    """Raised when model output cannot be turned into a planner outcome."""

    pass


@dataclasses.dataclass(frozen=True)
class PlannerRequest:
    action: str
    args: dict[str, Any]
    confirmed: bool | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"action": self.action, "args": dict(self.args)}
        if self.confirmed is not None:
            data["confirmed"] = self.confirmed
        return data


@dataclasses.dataclass(frozen=True)
class ActionOutcome:
    request: PlannerRequest
    kind: str = dataclasses.field(default="action", init=False)


@dataclasses.dataclass(frozen=True)
class NavigateOutcome:
    page: str
    kind: str = dataclasses.field(default="navigate", init=False)


@dataclasses.dataclass(frozen=True)
class AnswerOutcome:
    text: str
    kind: str = dataclasses.field(default="answer", init=False)


PlannerOutcome = Union[ActionOutcome, NavigateOutcome, AnswerOutcome]


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def parse_response(raw: str, valid_routes: list[str] | None = None) -> PlannerOutcome:
    """Parse model output into a :data:`PlannerOutcome`.

    Args:
        raw: Raw text returned by the text-generation backend.
        valid_routes: Known page routes.  When non-empty, navigation targets
            must match one of them (trailing slashes ignored); this rejects
            plausible but invented paths such as ``/appearance`` for
            ``/settings/appearance``.

    Raises:
        ResponseParseError: no JSON found, malformed JSON, bad navigation
            target, or a request that violates the executable contract.
    """
    json_text = extract_json(raw)
    if json_text is None:
        raise ResponseParseError(f"Could not extract JSON from LLM response: {raw[:200]}")

    try:
        parsed = json.loads(json_text)
    except json.JSONDecodeError as exc:
        raise ResponseParseError(f"Invalid JSON in LLM response: {json_text[:200]}") from exc

    if isinstance(parsed, dict) and isinstance(parsed.get("navigate"), str):
        page = normalize_path(parsed["navigate"])
        if not page:
            raise ResponseParseError(
                f'Invalid navigate target: "{parsed["navigate"]}" -- must be a path'
            )
        return NavigateOutcome(page=_check_route(page, valid_routes))

    if isinstance(parsed, dict) and parsed.get("action") == "navigate":
        args = parsed.get("args")
        page = extract_navigate_page(args if isinstance(args, dict) else None)
        if page is None:
            raise ResponseParseError(
                "Invalid navigate request -- args must include a recognizable page path"
            )
        return NavigateOutcome(page=_check_route(page, valid_routes))

    if isinstance(parsed, dict) and parsed.get("action") == "none":
        answer = parsed.get("answer")
        if isinstance(answer, str) and answer:
            return AnswerOutcome(text=answer)
        error = parsed.get("error") or "LLM could not map request to an action"
        raise ResponseParseError(str(error))

    errors = validate_planner_request(parsed)
    if errors:
        raise ResponseParseError(f"Invalid planner request: {', '.join(errors)}")

    return ActionOutcome(
        request=PlannerRequest(
            action=parsed["action"],
            args=dict(parsed["args"]),
            confirmed=parsed.get("confirmed"),
        )
    )


def validate_planner_request(data: Any) -> list[str]:
    """Check *data* against the executable request contract; [] when valid."""
    if not data or not isinstance(data, dict):
        return ["Request must be a non-null object"]

    schema_errors = sorted(_request_validator.iter_errors(data), key=lambda e: list(e.path))
    if schema_errors:
        return [f"/{'/'.join(str(p) for p in err.path)}: {err.message}" for err in schema_errors]

    errors: list[str] = []
    for path, value in _walk(data["args"], "args"):
        if looks_like_selector(value):
            errors.append(
                f"{path}: value looks like a CSS selector -- planners must use "
                f"semantic field names, not selectors"
            )
    return errors


def looks_like_selector(value: Any) -> bool:
    if not isinstance(value, str):
        return False
    text = value.strip()
    return any(pattern.match(text) for pattern in _SELECTOR_PATTERNS)


def extract_json(text: str) -> str | None:
    """Return the first JSON object in *text*, or None.

    Tries a fenced code block first, then scans from the first ``{`` for
    the matching ``}`` while skipping braces inside strings.
    """
    fenced = _FENCE_RE.search(text)
    if fenced:
        return fenced.group(1).strip()

    start = text.find("{")
    if start == -1:
        return None

    depth = 0
    in_string = False
    escape = False
    for i in range(start, len(text)):
        ch = text[i]
        if escape:
            escape = False
            continue
        if ch == "\\" and in_string:
            escape = True
            continue
        if ch == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return text[start:i + 1]
    return None


def normalize_path(raw: str) -> str | None:
    """Normalize a model-provided page reference to an absolute path.

    ``/invoices/new`` -> itself, ``invoices/new`` -> ``/invoices/new``,
    ``http://localhost:5173/invoices/new`` -> ``/invoices/new``.
    """
    trimmed = raw.strip()
    if not trimmed:
        return None

    if re.match(r"^https?://", trimmed, re.IGNORECASE):
        try:
            parts = urlsplit(trimmed)
        except ValueError:
            return None
        if not parts.netloc:
            return None
        return parts.path or "/"

    if trimmed.startswith("/"):
        return trimmed

    if re.match(r"^[a-z0-9]", trimmed, re.IGNORECASE):
        return f"/{trimmed}"

    return None


def extract_navigate_page(args: dict[str, Any] | None) -> str | None:
    """Find a page path in navigate args: well-known keys first, then any string."""
    if not args:
        return None

    for key in NAVIGATE_KEYS:
        val = args.get(key)
        if isinstance(val, str):
            normalized = normalize_path(val)
            if normalized:
                return normalized

    for val in args.values():
        if isinstance(val, str):
            normalized = normalize_path(val)
            if normalized:
                return normalized

    return None


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _strip_slash(route: str) -> str:
    return route.rstrip("/")


def _check_route(page: str, valid_routes: list[str] | None) -> str:
    if not valid_routes:
        return page
    target = _strip_slash(page)
    if any(_strip_slash(route) == target for route in valid_routes):
        return page
    raise ResponseParseError(
        f'Invalid navigation route "{page}". Valid routes: {", ".join(valid_routes)}'
    )


def _walk(value: Any, path: str):
    """Yield (path, leaf) for every leaf value in nested dicts/lists."""
    if isinstance(value, dict):
        for key, child in value.items():
            yield from _walk(child, f"{path}.{key}")
    elif isinstance(value, list):
        for idx, child in enumerate(value):
            yield from _walk(child, f"{path}[{idx}]")
    else:
        yield path, value
