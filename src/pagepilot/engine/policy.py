"""Risk / confirmation policy gate.

A pure decision function: contract + runtime state in, allow/deny out.  No
memory across calls.  The ``review`` confirmation tier never blocks here; it
only tells the executor to stop before submitting.
"""

from __future__ import annotations

import dataclasses
from typing import Any

from pagepilot.engine.annotations import OperationContract


@dataclasses.dataclass(frozen=True)
class PolicyDecision:
    allowed: bool
    reason: str | None = None
    missing_fields: tuple[str, ...] = ()


def requires_confirmation(contract: OperationContract) -> bool:
    """True for high-risk operations whose confirmation tier is ``required``."""
    return contract.risk == "high" and contract.confirmation == "required"


def missing_required(contract: OperationContract, args: dict[str, Any]) -> list[str]:
    """Schema-required fields that are absent or an empty string."""
    return [name for name in contract.required_fields if args.get(name) is None or args.get(name) == ""]


class PolicyEngine:
    """Evaluates whether an operation may run right now."""

    def check_execution(
        self,
        contract: OperationContract,
        confirmed: bool | None = None,
        required_fields: dict[str, Any] | None = None,
    ) -> PolicyDecision:
        """Rules, in order:

        1. high risk + ``required`` confirmation without ``confirmed=True`` -> deny
        2. ``required_fields`` supplied and a schema-required field is absent
           or an empty string -> deny, naming every missing field
        3. otherwise allow
        """
        if requires_confirmation(contract) and confirmed is not True:
            return PolicyDecision(
                allowed=False,
                reason=(
                    f'Action "{contract.title}" is high-risk and requires '
                    f"explicit confirmation"
                ),
            )

        if required_fields is not None:
            missing = missing_required(contract, required_fields)
            if missing:
                plural = "s" if len(missing) > 1 else ""
                quoted = ", ".join(f'"{name}"' for name in missing)
                return PolicyDecision(
                    allowed=False,
                    reason=f"Required field{plural} {quoted} missing or empty",
                    missing_fields=tuple(missing),
                )

        return PolicyDecision(allowed=True)
