"""Discovery engine -- builds the action catalog from a live annotated document.

Walks the tree behind a :class:`~pagepilot.engine.protocols.DocumentNode` and
produces one :class:`DiscoveredOperation` per top-level operation, with its
fields, status sinks, and submit sub-operation.  Discovery is read-only; a
page without annotations yields an empty catalog, which is a normal result.

Field resolution:
    A field belongs to an operation when it is nested inside the operation's
    element, or when it lives elsewhere and declares
    ``data-agent-for-action="<operation id>"``.  When both exist for the same
    field name the nested element wins.  Two elements for the same field
    inside one operation are ambiguous; the first in document order is used
    and a warning is logged.
"""

from __future__ import annotations

import dataclasses
import logging
from datetime import datetime, timezone
from typing import Any

from pagepilot.engine.annotations import is_submit_of, segment_count
from pagepilot.engine.protocols import DocumentNode
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
)

logger = logging.getLogger("pagepilot.engine.discovery")

# Top-level operations have at most this many dot-segments; anything deeper
# is a sub-operation and only surfaces as its parent's submit action.
MAX_TOP_LEVEL_SEGMENTS = 2


@dataclasses.dataclass
class DiscoveredField:
    field: str
    tag_name: str
    for_action: str | None = None
    options: list[str] = dataclasses.field(default_factory=list)
    node: Any = dataclasses.field(default=None, repr=False, compare=False)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"field": self.field, "tagName": self.tag_name}
        if self.for_action:
            data["forAction"] = self.for_action
        if self.options:
            data["options"] = list(self.options)
        return data


@dataclasses.dataclass
class DiscoveredStatus:
    output: str
    tag_name: str
    node: Any = dataclasses.field(default=None, repr=False, compare=False)

    def to_dict(self) -> dict[str, Any]:
        return {"output": self.output, "tagName": self.tag_name}


@dataclasses.dataclass
class DiscoveredLink:
    page: str
    tag_name: str
    text: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"page": self.page, "tagName": self.tag_name, "text": self.text}


@dataclasses.dataclass
class DiscoveredOperation:
    """One operation as found on the page (not as declared in the manifest)."""

    action: str
    danger: str | None = None
    confirm: str | None = None
    scope: str | None = None
    idempotent: str | None = None
    fields: list[DiscoveredField] = dataclasses.field(default_factory=list)
    statuses: list[DiscoveredStatus] = dataclasses.field(default_factory=list)
    submit_action: str | None = None
    node: Any = dataclasses.field(default=None, repr=False, compare=False)

    def field_names(self) -> list[str]:
        return [f.field for f in self.fields]

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"action": self.action, "kind": "action"}
        for key, val in (
            ("danger", self.danger),
            ("confirm", self.confirm),
            ("scope", self.scope),
            ("idempotent", self.idempotent),
        ):
            if val is not None:
                data[key] = val
        data["fields"] = [f.to_dict() for f in self.fields]
        data["statuses"] = [s.to_dict() for s in self.statuses]
        if self.submit_action:
            data["submitAction"] = self.submit_action
        return data


@dataclasses.dataclass
class ActionCatalog:
    """The operations discovered on the currently loaded page."""

    actions: list[DiscoveredOperation]
    url: str = ""
    timestamp: str = dataclasses.field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )

    def get(self, operation_id: str) -> DiscoveredOperation | None:
        for op in self.actions:
            if op.action == operation_id:
                return op
        return None

    def action_names(self) -> list[str]:
        return [op.action for op in self.actions]

    def to_dict(self) -> dict[str, Any]:
        return {
            "actions": [op.to_dict() for op in self.actions],
            "url": self.url,
            "timestamp": self.timestamp,
        }


# ---------------------------------------------------------------------------
# Discovery
# ---------------------------------------------------------------------------


def detect(root: DocumentNode) -> bool:
    """True when the document carries any agent annotation at all."""
    return root.get_attribute(ATTR_KIND) is not None or bool(root.find_all({ATTR_KIND: None}))


def discover(root: DocumentNode) -> list[DiscoveredOperation]:
    """Return the top-level operations under *root*, first occurrence wins."""
    candidates = _self_and_descendants(root, {ATTR_KIND: "action", ATTR_ACTION: None})
    operations: list[DiscoveredOperation] = []
    seen: set[str] = set()

    for el in candidates:
        name = el.get_attribute(ATTR_ACTION)
        if not name:
            continue
        if segment_count(name) > MAX_TOP_LEVEL_SEGMENTS:
            continue
        if name in seen:
            logger.debug("Duplicate action element for %s ignored", name)
            continue
        seen.add(name)

        operations.append(
            DiscoveredOperation(
                action=name,
                danger=el.get_attribute(ATTR_DANGER),
                confirm=el.get_attribute(ATTR_CONFIRM),
                scope=el.get_attribute(ATTR_SCOPE),
                idempotent=el.get_attribute(ATTR_IDEMPOTENT),
                fields=_discover_fields(root, el, name),
                statuses=_discover_statuses(el),
                submit_action=_find_submit_action(el, name),
                node=el,
            )
        )

    logger.debug("Discovered %d operations", len(operations))
    return operations


def discover_links(root: DocumentNode) -> list[DiscoveredLink]:
    links: list[DiscoveredLink] = []
    for el in root.find_all({ATTR_KIND: "link", ATTR_PAGE: None}):
        page = el.get_attribute(ATTR_PAGE)
        if page:
            links.append(DiscoveredLink(page=page, tag_name=el.tag_name, text=el.text()))
    return links


def build_catalog(root: DocumentNode, url: str = "") -> ActionCatalog:
    return ActionCatalog(actions=discover(root), url=url)


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _self_and_descendants(root: DocumentNode, attrs: dict[str, str | None]) -> list[DocumentNode]:
    matches = root.find_all(attrs)
    if _matches(root, attrs):
        return [root, *matches]
    return matches


def _matches(node: DocumentNode, attrs: dict[str, str | None]) -> bool:
    for name, expected in attrs.items():
        actual = node.get_attribute(name)
        if actual is None or (expected is not None and actual != expected):
            return False
    return True


def _discover_fields(root: DocumentNode, action_el: DocumentNode, action_name: str) -> list[DiscoveredField]:
    fields: list[DiscoveredField] = []
    present: set[str] = set()

    for f in action_el.find_all({ATTR_KIND: "field"}):
        name = f.get_attribute(ATTR_FIELD)
        if not name:
            continue
        if name in present:
            logger.warning(
                "Action %s has more than one element for field %s; using the first",
                action_name, name,
            )
            continue
        present.add(name)
        fields.append(_make_field(f, name, f.get_attribute(ATTR_FOR_ACTION)))

    for f in root.find_all({ATTR_KIND: "field", ATTR_FOR_ACTION: action_name}):
        name = f.get_attribute(ATTR_FIELD)
        if not name or name in present:
            continue
        present.add(name)
        fields.append(_make_field(f, name, action_name))

    return fields


def _make_field(node: DocumentNode, name: str, for_action: str | None) -> DiscoveredField:
    tag = node.tag_name
    options = node.option_values() if tag == "select" else []
    return DiscoveredField(field=name, tag_name=tag, for_action=for_action, options=options, node=node)


def _discover_statuses(action_el: DocumentNode) -> list[DiscoveredStatus]:
    return [
        DiscoveredStatus(output=s.get_attribute(ATTR_OUTPUT) or "", tag_name=s.tag_name, node=s)
        for s in action_el.find_all({ATTR_KIND: "status"})
    ]


def _find_submit_action(action_el: DocumentNode, action_name: str) -> str | None:
    for sub in action_el.find_all({ATTR_KIND: "action", ATTR_ACTION: None}):
        sub_name = sub.get_attribute(ATTR_ACTION)
        if sub_name and is_submit_of(sub_name, action_name):
            return sub_name
    return None
