"""Manifest loading, contract lookup, and input-schema validation.

The manifest is the site's declared contract: which operations exist, what
they accept, how risky they are, and which page each one lives on.  Input
validation is delegated to ``jsonschema`` (Draft 7); coercion always runs
first so the validator sees well-typed data.
"""

from __future__ import annotations

import dataclasses
import json
import logging
from pathlib import Path
from typing import Any

import yaml
from jsonschema import Draft7Validator
from jsonschema.exceptions import SchemaError

from pagepilot.engine.annotations import DataView, OperationContract, PageEntry
from pagepilot.engine.coercion import Coercion, coerce_args

logger = logging.getLogger("pagepilot.engine.manifest")


class ManifestError(Exception):
    """Raised for a malformed manifest or an unknown operation identifier."""

    pass


@dataclasses.dataclass
class ValidationResult:
    """Outcome of validating an argument map against an input schema."""

    valid: bool
    errors: list[str] = dataclasses.field(default_factory=list)
    missing_fields: list[str] | None = None


@dataclasses.dataclass
class CoercedValidation:
    valid: bool
    errors: list[str]
    coerced: dict[str, Any]
    coercions: list[Coercion]


@dataclasses.dataclass
class Manifest:
    """Parsed site manifest."""

    version: str
    site: dict[str, Any]
    actions: dict[str, OperationContract]
    data: dict[str, DataView] = dataclasses.field(default_factory=dict)
    pages: dict[str, PageEntry] = dataclasses.field(default_factory=dict)
    errors: dict[str, dict[str, Any]] = dataclasses.field(default_factory=dict)

    @classmethod
    def from_file(cls, path: Path) -> Manifest:
        """Load a manifest from a ``.json`` or ``.yaml`` file."""
        if not path.is_file():
            raise ManifestError(f"Manifest file not found: {path}")
        text = path.read_text(encoding="utf-8")
        try:
            if path.suffix.lower() in (".yaml", ".yml"):
                data = yaml.safe_load(text)
            else:
                data = json.loads(text)
        except (json.JSONDecodeError, yaml.YAMLError) as exc:
            raise ManifestError(f"Could not parse manifest {path}: {exc}") from exc
        return load_manifest(data)

    def get_action(self, operation_id: str) -> OperationContract:
        contract = self.actions.get(operation_id)
        if contract is None:
            raise ManifestError(f'Action "{operation_id}" not found in manifest')
        return contract

    def page_for_action(self, operation_id: str) -> str | None:
        """Route of the first page that lists *operation_id*, or None."""
        for route, page in self.pages.items():
            if operation_id in page.actions:
                return route
        return None

    def routes(self) -> list[str]:
        return list(self.pages)


def load_manifest(data: Any) -> Manifest:
    """Build a :class:`Manifest` from already-parsed JSON/YAML data."""
    if not data or not isinstance(data, dict):
        raise ManifestError("Manifest must be a non-null object")
    if not data.get("version") or not data.get("site") or "actions" not in data:
        raise ManifestError("Manifest missing required fields: version, site, actions")
    if not isinstance(data["actions"], dict):
        raise ManifestError("Manifest 'actions' must be a mapping of operation id to contract")

    try:
        actions = {
            op_id: OperationContract.from_dict(op_id, entry or {})
            for op_id, entry in data["actions"].items()
        }
        views = {
            view_id: DataView.from_dict(view_id, entry or {})
            for view_id, entry in (data.get("data") or {}).items()
        }
        pages = {
            route: PageEntry.from_dict(route, entry or {})
            for route, entry in (data.get("pages") or {}).items()
        }
    except (ValueError, AttributeError) as exc:
        raise ManifestError(f"Invalid manifest entry: {exc}") from exc

    for op_id, contract in actions.items():
        _check_schema(op_id, "inputSchema", contract.input_schema)
        _check_schema(op_id, "outputSchema", contract.output_schema)

    for route, page in pages.items():
        for op_id in page.actions:
            if op_id not in actions:
                logger.warning("Page %s lists unknown action %s", route, op_id)

    logger.debug("Loaded manifest v%s with %d actions", data["version"], len(actions))
    return Manifest(
        version=str(data["version"]),
        site=dict(data["site"]),
        actions=actions,
        data=views,
        pages=pages,
        errors=dict(data.get("errors") or {}),
    )


def _check_schema(op_id: str, label: str, schema: dict[str, Any]) -> None:
    try:
        Draft7Validator.check_schema(schema)
    except SchemaError as exc:
        raise ManifestError(f"Invalid JSON Schema for {op_id} {label}: {exc.message}") from exc


def validate_input(contract: OperationContract, args: dict[str, Any]) -> ValidationResult:
    """Validate *args* against the contract's input schema."""
    validator = Draft7Validator(contract.input_schema)
    schema_errors = sorted(validator.iter_errors(args), key=lambda e: list(e.path))
    if schema_errors:
        errors = []
        for err in schema_errors:
            loc = "/" + "/".join(str(p) for p in err.path)
            errors.append(f"{loc}: {err.message}")
        return ValidationResult(valid=False, errors=errors)
    return ValidationResult(valid=True)


def coerce_and_validate(contract: OperationContract, args: dict[str, Any]) -> CoercedValidation:
    """Coerce *args* to the schema's types, then validate the coerced copy."""
    result = coerce_args(args, contract.input_schema)
    validation = validate_input(contract, result.args)
    return CoercedValidation(
        valid=validation.valid,
        errors=validation.errors,
        coerced=result.args,
        coercions=result.coercions,
    )
