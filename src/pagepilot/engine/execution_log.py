"""Execution logger -- ordered, replayable record of one execution attempt.

Every pipeline transition appends exactly one step.  The log is the only
externally visible trace of *why* a decision was made, so failure paths log
just as completely as successful ones.
"""

from __future__ import annotations

import dataclasses
import json
import time
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from pagepilot.engine.coercion import Coercion

STEP_TYPES = ("navigate", "fill", "click", "read_status", "validate", "policy_check", "coerce")

LOG_MODES = ("ui", "direct")


@dataclasses.dataclass(frozen=True)
class LogStep:
    type: str
    url: str | None = None
    field: str | None = None
    value: Any = None
    action: str | None = None
    output: str | None = None
    result: str | None = None
    error: str | None = None
    coercions: tuple[Coercion, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"type": self.type}
        for name in ("url", "field", "action", "output", "result", "error"):
            val = getattr(self, name)
            if val is not None:
                data[name] = val
        if self.type in ("fill", "read_status"):
            data["value"] = self.value
        if self.coercions:
            data["coercions"] = [c.to_dict() for c in self.coercions]
        return data


@dataclasses.dataclass
class ExecutionLog:
    session_id: str
    action: str
    mode: str
    steps: list[LogStep]
    timestamp: str

    def step_types(self) -> list[str]:
        return [step.type for step in self.steps]

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "action": self.action,
            "mode": self.mode,
            "steps": [step.to_dict() for step in self.steps],
            "timestamp": self.timestamp,
        }

    def to_json(self, indent: int | None = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent, default=str)

    def save(self, directory: Path) -> Path:
        """Write the log to ``<directory>/<session_id>.json`` and return the path."""
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / f"{self.session_id}.json"
        path.write_text(self.to_json(), encoding="utf-8")
        return path


class ExecutionLogger:
    """Append-only step recorder for a single operation attempt."""

    def __init__(self, action: str, mode: str = "ui", session_id: str | None = None) -> None:
        if mode not in LOG_MODES:
            raise ValueError(f"mode must be one of {', '.join(LOG_MODES)}, got {mode!r}")
        self._session_id = session_id or _new_session_id()
        self._action = action
        self._mode = mode
        self._steps: list[LogStep] = []

    @property
    def session_id(self) -> str:
        return self._session_id

    def navigate(self, url: str) -> None:
        self._steps.append(LogStep(type="navigate", url=url))

    def fill(self, field: str, value: Any) -> None:
        self._steps.append(LogStep(type="fill", field=field, value=value))

    def click(self, action: str) -> None:
        self._steps.append(LogStep(type="click", action=action))

    def read_status(self, output: str, value: Any) -> None:
        self._steps.append(LogStep(type="read_status", output=output, value=value))

    def validate(self, result: str, error: str | None = None) -> None:
        self._steps.append(LogStep(type="validate", result=result, error=error))

    def policy_check(self, result: str, error: str | None = None) -> None:
        self._steps.append(LogStep(type="policy_check", result=result, error=error))

    def coerce(self, coercions: list[Coercion]) -> None:
        """Record the repairs applied to the arguments.  No-op when there were none."""
        if coercions:
            self._steps.append(LogStep(type="coerce", coercions=tuple(coercions)))

    def to_log(self) -> ExecutionLog:
        return ExecutionLog(
            session_id=self._session_id,
            action=self._action,
            mode=self._mode,
            steps=list(self._steps),
            timestamp=datetime.now(timezone.utc).isoformat(),
        )


def _new_session_id() -> str:
    return f"s_{int(time.time() * 1000):x}_{uuid.uuid4().hex[:6]}"
