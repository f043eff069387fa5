"""Annotation model -- element roles, attributes, and the operation contract shape.

Pages mark up what an agent may do with ``data-agent-*`` attributes (see
:mod:`pagepilot.models` for the attribute names).  A site additionally ships a
manifest that declares, per operation, the contract the pipeline enforces:
risk, confirmation tier, permission scope and JSON schemas for input and
output.  The page is trusted for *presence*, the contract for *policy*.
"""

from __future__ import annotations

import dataclasses
import re
from typing import Any

from pagepilot.models import (
    ATTR_ACTION,
    ATTR_CONFIRM,
    ATTR_DANGER,
    ATTR_FIELD,
    ATTR_FOR_ACTION,
    ATTR_IDEMPOTENT,
    ATTR_KIND,
    ATTR_OUTPUT,
    ATTR_PAGE,
    ATTR_SCOPE,
    ATTR_VERSION,
    CONFIRMATION_TIERS,
    RISK_LEVELS,
    ROLES,
)

OPERATION_ID_RE = re.compile(r"^[a-z][a-z0-9-]*(\.[a-z][a-z0-9-]*)*$")


def is_operation_id(value: Any) -> bool:
    """True for lowercase dot-separated identifiers such as ``invoice.create``."""
    return isinstance(value, str) and OPERATION_ID_RE.match(value) is not None


def segment_count(operation_id: str) -> int:
    return len(operation_id.split("."))


def is_submit_of(candidate: str, operation_id: str) -> bool:
    """True when *candidate* is *operation_id* plus exactly one more segment."""
    prefix = operation_id + "."
    return (
        candidate.startswith(prefix)
        and len(candidate) > len(prefix)
        and "." not in candidate[len(prefix):]
    )


@dataclasses.dataclass(frozen=True)
class OperationContract:
    """Declared manifest entry for one operation.  Immutable once loaded."""

    identifier: str
    title: str
    scope: str
    risk: str
    confirmation: str
    idempotent: bool
    input_schema: dict[str, Any]
    output_schema: dict[str, Any]
    description: str = ""

    @property
    def required_fields(self) -> list[str]:
        required = self.input_schema.get("required") or []
        return [str(name) for name in required]

    @property
    def properties(self) -> dict[str, Any]:
        props = self.input_schema.get("properties")
        return props if isinstance(props, dict) else {}

    @classmethod
    def from_dict(cls, identifier: str, data: dict[str, Any]) -> OperationContract:
        if not is_operation_id(identifier):
            raise ValueError(f"Invalid operation identifier: {identifier!r}")
        risk = str(data.get("risk", "none"))
        if risk not in RISK_LEVELS:
            raise ValueError(f"{identifier}: risk must be one of {', '.join(RISK_LEVELS)}, got {risk!r}")
        confirmation = str(data.get("confirmation", "never"))
        if confirmation not in CONFIRMATION_TIERS:
            raise ValueError(
                f"{identifier}: confirmation must be one of "
                f"{', '.join(CONFIRMATION_TIERS)}, got {confirmation!r}"
            )
        return cls(
            identifier=identifier,
            title=str(data.get("title", identifier)),
            description=str(data.get("description", "")),
            scope=str(data.get("scope", "")),
            risk=risk,
            confirmation=confirmation,
            idempotent=bool(data.get("idempotent", False)),
            input_schema=dict(data.get("inputSchema") or data.get("input_schema") or {}),
            output_schema=dict(data.get("outputSchema") or data.get("output_schema") or {}),
        )


@dataclasses.dataclass(frozen=True)
class DataView:
    """Read-only data view -- navigating to its page is the "execution"."""

    identifier: str
    title: str
    scope: str
    output_schema: dict[str, Any]
    input_schema: dict[str, Any] | None = None
    description: str = ""

    @classmethod
    def from_dict(cls, identifier: str, data: dict[str, Any]) -> DataView:
        input_schema = data.get("inputSchema") or data.get("input_schema")
        return cls(
            identifier=identifier,
            title=str(data.get("title", identifier)),
            description=str(data.get("description", "")),
            scope=str(data.get("scope", "")),
            input_schema=dict(input_schema) if input_schema else None,
            output_schema=dict(data.get("outputSchema") or data.get("output_schema") or {}),
        )


@dataclasses.dataclass(frozen=True)
class PageEntry:
    """A routable page and the operations / data views available on it."""

    route: str
    title: str
    description: str = ""
    actions: tuple[str, ...] = ()
    data: tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, route: str, data: dict[str, Any]) -> PageEntry:
        return cls(
            route=route,
            title=str(data.get("title", route)),
            description=str(data.get("description", "")),
            actions=tuple(data.get("actions") or ()),
            data=tuple(data.get("data") or ()),
        )


@dataclasses.dataclass
class SemanticElement:
    """One annotated element with its annotated descendants."""

    role: str
    tag_name: str
    action: str | None = None
    field: str | None = None
    output: str | None = None
    danger: str | None = None
    confirm: str | None = None
    scope: str | None = None
    idempotent: str | None = None
    for_action: str | None = None
    version: str | None = None
    page: str | None = None
    text: str | None = None
    children: list[SemanticElement] = dataclasses.field(default_factory=list)


def parse_element(node: Any) -> SemanticElement | None:
    """Build the semantic subtree rooted at *node*, or None if it is not annotated."""
    role = node.get_attribute(ATTR_KIND)
    if not role or role not in ROLES:
        return None
    text = node.text()
    return SemanticElement(
        role=role,
        tag_name=node.tag_name,
        action=node.get_attribute(ATTR_ACTION),
        field=node.get_attribute(ATTR_FIELD),
        output=node.get_attribute(ATTR_OUTPUT),
        danger=node.get_attribute(ATTR_DANGER),
        confirm=node.get_attribute(ATTR_CONFIRM),
        scope=node.get_attribute(ATTR_SCOPE),
        idempotent=node.get_attribute(ATTR_IDEMPOTENT),
        for_action=node.get_attribute(ATTR_FOR_ACTION),
        version=node.get_attribute(ATTR_VERSION),
        page=node.get_attribute(ATTR_PAGE),
        text=text or None,
        children=parse_children(node),
    )


def parse_children(node: Any) -> list[SemanticElement]:
    """Annotated descendants of *node*, skipping unannotated wrappers.

    Only the outermost annotated elements are returned; deeper ones are
    attached as their ``children``.
    """
    annotated = node.find_all({ATTR_KIND: None})
    results: list[SemanticElement] = []
    covered: list[Any] = []
    for candidate in annotated:
        if any(_contains(outer, candidate) for outer in covered):
            continue
        parsed = parse_element(candidate)
        if parsed is None:
            continue
        covered.append(candidate)
        results.append(parsed)
    return results


def _contains(outer: Any, inner: Any) -> bool:
    # Nodes compare equal when they wrap the same underlying element.
    return any(inner == n for n in outer.find_all({ATTR_KIND: None}))
