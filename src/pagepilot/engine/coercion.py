"""Argument coercion -- repairs common model type mismatches before validation.

Models routinely answer ``"150"`` where the schema wants a number, ``"true"``
for a boolean, ``"eur"`` for an ``EUR`` enum member, or ``null`` for a field
they know nothing about.  :func:`coerce_args` fixes exactly those cases,
records each repair, and returns a new argument map; the input is never
mutated.

Rules (per property declared in the schema):

- ``null`` -> dropped from the output (model null = not provided)
- string -> number when ``type == "number"`` and the string is a finite number
- string -> integer when ``type == "integer"`` and the value is integral
- ``"true"`` / ``"false"`` -> boolean when ``type == "boolean"``
- enum case-fix: case-insensitive match against ``enum`` members

Properties absent from the schema pass through untouched.
"""

from __future__ import annotations

import dataclasses
import math
from typing import Any

RULE_NULL_DELETE = "null→delete"
RULE_STRING_NUMBER = "string→number"
RULE_STRING_INTEGER = "string→integer"
RULE_STRING_BOOLEAN = "string→boolean"
RULE_ENUM_CASE_FIX = "enum-case-fix"


@dataclasses.dataclass(frozen=True)
class Coercion:
    """One recorded type repair."""

    field: str
    original: Any
    new: Any
    rule: str

    def to_dict(self) -> dict[str, Any]:
        return {"field": self.field, "from": self.original, "to": self.new, "rule": self.rule}


@dataclasses.dataclass
class CoerceResult:
    args: dict[str, Any]
    coercions: list[Coercion]


def coerce_args(args: dict[str, Any], schema: dict[str, Any]) -> CoerceResult:
    """Coerce *args* to match the property types declared in *schema*."""
    properties = schema.get("properties") if isinstance(schema, dict) else None
    if not isinstance(properties, dict):
        return CoerceResult(args=dict(args), coercions=[])

    coerced: dict[str, Any] = {}
    coercions: list[Coercion] = []

    for key, value in args.items():
        prop = properties.get(key)
        if not isinstance(prop, dict):
            coerced[key] = value
            continue

        if value is None:
            coercions.append(Coercion(key, None, None, RULE_NULL_DELETE))
            continue

        new_value, rule = _coerce_value(value, prop)
        coerced[key] = new_value
        if rule is not None:
            coercions.append(Coercion(key, value, new_value, rule))

    return CoerceResult(args=coerced, coercions=coercions)


def _coerce_value(value: Any, prop: dict[str, Any]) -> tuple[Any, str | None]:
    if not isinstance(value, str):
        return value, None

    declared = prop.get("type")

    if declared == "number":
        number = _parse_number(value)
        if number is not None:
            return number, RULE_STRING_NUMBER
    elif declared == "integer":
        number = _parse_number(value)
        if number is not None and float(number).is_integer():
            return int(number), RULE_STRING_INTEGER
    elif declared == "boolean":
        if value == "true":
            return True, RULE_STRING_BOOLEAN
        if value == "false":
            return False, RULE_STRING_BOOLEAN

    members = prop.get("enum")
    if isinstance(members, list):
        lowered = value.lower()
        for member in members:
            if isinstance(member, str) and member.lower() == lowered:
                if member != value:
                    return member, RULE_ENUM_CASE_FIX
                break

    return value, None


def _parse_number(text: str) -> int | float | None:
    stripped = text.strip()
    # int()/float() accept digit separators; model output never means them.
    if not stripped or "_" in stripped:
        return None
    try:
        return int(stripped)
    except ValueError:
        pass
    try:
        number = float(stripped)
    except ValueError:
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number
