"""Planner -- natural language in, planner outcome out, with a bounded retry loop.

The retry policy is explicit state rather than an exception-driven loop:
each failure is classified before deciding whether to try again.  Only
extraction / parse failures are retried (the model may do better on a second
sample).  Backend connectivity, authentication, and any other transport
failure propagate immediately.
"""

from __future__ import annotations

import dataclasses
import logging

from pagepilot.engine.backends import BackendError
from pagepilot.engine.discovery import ActionCatalog
from pagepilot.engine.prompt_builder import (
    PageSummary,
    SiteActionSummary,
    build_system_prompt,
    build_user_prompt,
)
from pagepilot.engine.protocols import TextBackend
from pagepilot.engine.response_parser import PlannerOutcome, ResponseParseError, parse_response
from pagepilot.models import DEFAULT_MAX_ATTEMPTS

logger = logging.getLogger("pagepilot.engine.planner")


class PlannerError(Exception):
    """Raised when every attempt produced an unusable reply."""

    def __init__(self, message: str, attempts: int, last_error: Exception | None) -> None:
        super().__init__(message)
        self.attempts = attempts
        self.last_error = last_error


def is_retryable(exc: Exception) -> bool:
    """Parse-level failures are retryable; transport failures never are."""
    if isinstance(exc, BackendError):
        return False
    return isinstance(exc, ResponseParseError)


@dataclasses.dataclass
class RetryState:
    max_attempts: int
    attempts: int = 0
    last_error: Exception | None = None
    history: list[str] = dataclasses.field(default_factory=list)

    @property
    def exhausted(self) -> bool:
        return self.attempts >= self.max_attempts

    def record_failure(self, exc: Exception) -> None:
        self.last_error = exc
        self.history.append(str(exc))


class Planner:
    """Maps a user message to a :data:`PlannerOutcome` using a text backend."""

    def __init__(self, backend: TextBackend, max_attempts: int = DEFAULT_MAX_ATTEMPTS) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._backend = backend
        self._max_attempts = max_attempts
        self.last_state: RetryState | None = None

    def plan(
        self,
        user_message: str,
        catalog: ActionCatalog,
        page_data: str | None = None,
        valid_routes: list[str] | None = None,
        site_actions: list[SiteActionSummary] | None = None,
        pages: list[PageSummary] | None = None,
    ) -> PlannerOutcome:
        system_prompt = build_system_prompt(catalog, page_data, site_actions, pages)
        user_prompt = build_user_prompt(user_message)

        state = RetryState(max_attempts=self._max_attempts)
        self.last_state = state

        while not state.exhausted:
            state.attempts += 1
            try:
                raw = self._backend.generate(user_prompt, system_prompt, json=True)
                outcome = parse_response(raw, valid_routes=valid_routes)
            except Exception as exc:
                state.record_failure(exc)
                if not is_retryable(exc):
                    logger.error(
                        "Planner attempt %d/%d failed (not retryable): %s",
                        state.attempts, state.max_attempts, exc,
                    )
                    raise
                logger.warning(
                    "Planner attempt %d/%d unusable: %s",
                    state.attempts, state.max_attempts, exc,
                )
                continue

            logger.info(
                "Planned %s outcome via %s on attempt %d",
                outcome.kind, self._backend.name(), state.attempts,
            )
            return outcome

        raise PlannerError(
            f"Planner failed after {state.attempts} attempts: {state.last_error}",
            attempts=state.attempts,
            last_error=state.last_error,
        )
