"""PagePilot Action Executor -- runs one operation against a live page.

Per attempt the pipeline is::

    policy_check -> coerce -> validate -> (navigate) -> discover -> fill
        -> {stop for review | click submit -> settle -> read status}

Contract, policy, and execution failures never raise out of :meth:`execute`;
they come back as an :class:`ExecutionResult` whose log explains the
decision.  No field is filled before the policy check and validation pass.
"""

from __future__ import annotations

import dataclasses
import logging
from typing import Any
from urllib.parse import urlsplit

from jsonschema.exceptions import SchemaError, UnknownType

from pagepilot.engine.discovery import ActionCatalog, DiscoveredOperation, build_catalog, detect
from pagepilot.engine.execution_log import ExecutionLog, ExecutionLogger
from pagepilot.engine.manifest import Manifest, ManifestError, ValidationResult, coerce_and_validate
from pagepilot.engine.policy import PolicyEngine, missing_required
from pagepilot.engine.protocols import PageSession
from pagepilot.engine.response_parser import (
    ActionOutcome,
    AnswerOutcome,
    NavigateOutcome,
    PlannerOutcome,
)
from pagepilot.models import ATTR_ACTION, ATTR_KIND, ATTR_OUTPUT, DEFAULT_SETTLE_SECONDS

logger = logging.getLogger("pagepilot.engine.action_executor")

STATUSES = (
    "completed",
    "awaiting_review",
    "needs_confirmation",
    "validation_error",
    "execution_error",
    "missing_required_fields",
    "cancelled",
    "navigated",
    "answered",
)

# Statuses that count as a successful run for exit codes.
SUCCESS_STATUSES = frozenset({"completed", "awaiting_review", "navigated", "answered"})


@dataclasses.dataclass
class ExecutionResult:
    """Terminal outcome of one pipeline attempt."""

    status: str
    action: str | None = None
    result: Any = None
    log: ExecutionLog | None = None
    confirmation_metadata: dict[str, Any] | None = None
    error: str | None = None
    missing_fields: list[str] | None = None

    @property
    def ok(self) -> bool:
        return self.status in SUCCESS_STATUSES

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"status": self.status}
        if self.action is not None:
            data["action"] = self.action
        if self.result is not None:
            data["result"] = self.result
        if self.log is not None:
            data["log"] = self.log.to_dict()
        if self.confirmation_metadata is not None:
            data["confirmation_metadata"] = dict(self.confirmation_metadata)
        if self.error is not None:
            data["error"] = self.error
        if self.missing_fields is not None:
            data["missing_fields"] = list(self.missing_fields)
        return data


def validate_runtime_response(data: Any) -> list[str]:
    """Check a serialized :class:`ExecutionResult`; returns [] when well-formed."""
    if not isinstance(data, dict):
        return ["Response must be an object"]

    errors: list[str] = []
    status = data.get("status")
    if status not in STATUSES:
        errors.append(f"Invalid status: {status!r}. Expected one of: {', '.join(STATUSES)}")

    if status == "needs_confirmation":
        meta = data.get("confirmation_metadata")
        if not isinstance(meta, dict):
            errors.append("needs_confirmation response must include confirmation_metadata")
        else:
            for key in ("action", "risk", "scope", "title"):
                if not isinstance(meta.get(key), str):
                    errors.append(f"confirmation_metadata.{key} must be a string")

    if status == "missing_required_fields":
        missing = data.get("missing_fields")
        if not isinstance(missing, list) or not missing:
            errors.append("missing_required_fields response must include a non-empty missing_fields list")

    if "log" in data and not isinstance(data["log"], dict):
        errors.append("log must be an object")
    return errors


class ActionExecutor:
    """Executes manifest operations on a :class:`PageSession`."""

    def __init__(
        self,
        session: PageSession,
        manifest: Manifest,
        base_url: str = "",
        settle_seconds: float = DEFAULT_SETTLE_SECONDS,
        policy: PolicyEngine | None = None,
        mode: str = "ui",
    ) -> None:
        self._session = session
        self._manifest = manifest
        self._base_url = base_url.rstrip("/")
        self._settle_seconds = settle_seconds
        self._policy = policy or PolicyEngine()
        self._mode = mode

    # -- Inspection ----------------------------------------------------------

    def detect(self) -> bool:
        return detect(self._session.root())

    def discover(self) -> ActionCatalog:
        catalog = build_catalog(self._session.root(), url=self._session.url())
        logger.info("Discovered %d operations on %s", len(catalog.actions), catalog.url)
        return catalog

    def validate(self, operation_id: str, args: dict[str, Any]) -> ValidationResult:
        """Coerce and validate *args* for *operation_id* without touching the page."""
        try:
            contract = self._manifest.get_action(operation_id)
        except ManifestError as exc:
            return ValidationResult(valid=False, errors=[str(exc)])

        try:
            checked = coerce_and_validate(contract, args)
        except (SchemaError, UnknownType) as exc:
            problem = _schema_problem(exc)
            return ValidationResult(valid=False, errors=[f"Invalid input schema for {operation_id}: {problem}"])
        missing = missing_required(contract, checked.coerced)
        return ValidationResult(
            valid=checked.valid and not missing,
            errors=checked.errors,
            missing_fields=missing or None,
        )

    # -- Execution -----------------------------------------------------------

    def execute(
        self,
        operation_id: str,
        args: dict[str, Any],
        confirmed: bool = False,
    ) -> ExecutionResult:
        """Run *operation_id* with *args*.

        ``confirmed`` is the human's explicit consent.  It is never taken from
        model output.
        """
        log = ExecutionLogger(operation_id, mode=self._mode)

        try:
            contract = self._manifest.get_action(operation_id)
        except ManifestError as exc:
            log.validate("FAILED", str(exc))
            return self._finish(log, "validation_error", operation_id, error=str(exc))

        decision = self._policy.check_execution(contract, confirmed=confirmed, required_fields=args)
        if not decision.allowed:
            log.policy_check("BLOCKED", decision.reason)
            if decision.missing_fields:
                return self._finish(
                    log, "missing_required_fields", operation_id,
                    error=decision.reason, missing_fields=list(decision.missing_fields),
                )
            return self._finish(
                log, "needs_confirmation", operation_id,
                error=decision.reason,
                confirmation_metadata={
                    "action": operation_id,
                    "risk": contract.risk,
                    "scope": contract.scope,
                    "title": contract.title,
                },
            )
        log.policy_check("PASSED", "confirmed by user" if confirmed else None)

        try:
            checked = coerce_and_validate(contract, args)
        except (SchemaError, UnknownType) as exc:
            problem = _schema_problem(exc)
            logger.error("Input schema of %s is not valid JSON Schema: %s", operation_id, problem)
            log.validate("FAILED", f"Invalid input schema: {problem}")
            return self._finish(
                log, "validation_error", operation_id,
                error=f"Invalid input schema for {operation_id}: {problem}",
            )
        log.coerce(checked.coercions)
        if not checked.valid:
            detail = ", ".join(checked.errors)
            log.validate("FAILED", detail)
            return self._finish(
                log, "validation_error", operation_id,
                error=f"Input validation failed: {detail}",
            )
        log.validate("PASSED")

        try:
            return self._run_on_page(log, operation_id, contract.confirmation, checked.coerced)
        except Exception as exc:
            logger.error("Execution of %s failed: %s", operation_id, exc, exc_info=True)
            return self._finish(log, "execution_error", operation_id, error=str(exc))

    def decline(self, operation_id: str) -> ExecutionResult:
        """Record a human refusing a ``needs_confirmation`` prompt."""
        log = ExecutionLogger(operation_id, mode=self._mode)
        log.policy_check("DECLINED", "User declined confirmation")
        return self._finish(log, "cancelled", operation_id, error="Cancelled by user")

    def run_outcome(self, outcome: PlannerOutcome, confirmed: bool = False) -> ExecutionResult:
        """Dispatch a planner outcome to the matching handler."""
        if isinstance(outcome, ActionOutcome):
            return self.execute(outcome.request.action, outcome.request.args, confirmed=confirmed)
        if isinstance(outcome, NavigateOutcome):
            return self._navigate(outcome.page)
        if isinstance(outcome, AnswerOutcome):
            return ExecutionResult(status="answered", result=outcome.text)
        raise TypeError(f"Unhandled planner outcome: {outcome!r}")

    # -- Internals -----------------------------------------------------------

    def _run_on_page(
        self,
        log: ExecutionLogger,
        operation_id: str,
        confirmation: str,
        args: dict[str, Any],
    ) -> ExecutionResult:
        route = self._manifest.page_for_action(operation_id)
        if route is not None and not self._on_route(route):
            url = self._url_for(route)
            log.navigate(url)
            self._session.goto(url)

        catalog = self.discover()
        op = catalog.get(operation_id)
        if op is None:
            logger.warning("Action %s not found on %s", operation_id, catalog.url)
            return self._finish(
                log, "execution_error", operation_id,
                error=f'Action "{operation_id}" not found on page',
            )

        self._fill(log, op, args)

        if confirmation == "review":
            logger.info("Action %s filled; awaiting human review before submit", operation_id)
            return self._finish(log, "awaiting_review", operation_id)

        self._submit(log, op)
        self._session.wait(self._settle_seconds)
        outputs = self._read_status(log, op)
        return self._finish(log, "completed", operation_id, result=outputs)

    def _fill(self, log: ExecutionLogger, op: DiscoveredOperation, args: dict[str, Any]) -> None:
        for field in op.fields:
            if field.field not in args:
                continue
            value = args[field.field]
            if value is None:
                continue
            text = _as_text(value)
            if field.tag_name == "select":
                field.node.select_option(text)
            else:
                field.node.set_value(text)
            log.fill(field.field, value)

        unused = sorted(set(args) - set(op.field_names()))
        if unused:
            logger.debug("Action %s has no page field for: %s", op.action, ", ".join(unused))

    def _submit(self, log: ExecutionLogger, op: DiscoveredOperation) -> None:
        if op.submit_action:
            targets = op.node.find_all({ATTR_KIND: "action", ATTR_ACTION: op.submit_action})
            if not targets:
                raise RuntimeError(f'Submit action "{op.submit_action}" disappeared from page')
            targets[0].click()
            log.click(op.submit_action)
        else:
            op.node.click()
            log.click(op.action)

    def _read_status(self, log: ExecutionLogger, op: DiscoveredOperation) -> dict[str, str]:
        outputs: dict[str, str] = {}
        if op.statuses:
            sinks = [(s.output, s.node) for s in op.statuses]
        else:
            # Fall back to the first page-level status sink.
            nodes = self._session.root().find_all({ATTR_KIND: "status"})
            sinks = [(n.get_attribute(ATTR_OUTPUT) or "", n) for n in nodes[:1]]

        for output, node in sinks:
            text = node.text()
            if text:
                log.read_status(output, text)
                outputs[output] = text
        return outputs

    def _navigate(self, page: str) -> ExecutionResult:
        log = ExecutionLogger("navigate", mode=self._mode)
        url = self._url_for(page)
        log.navigate(url)
        try:
            self._session.goto(url)
        except Exception as exc:
            logger.error("Navigation to %s failed: %s", url, exc, exc_info=True)
            return self._finish(log, "execution_error", None, error=str(exc))
        return self._finish(log, "navigated", None, result=page)

    def _on_route(self, route: str) -> bool:
        current = urlsplit(self._session.url()).path or "/"
        return current.rstrip("/") == route.rstrip("/")

    def _url_for(self, route: str) -> str:
        base = self._base_url
        if not base:
            parts = urlsplit(self._session.url())
            base = f"{parts.scheme}://{parts.netloc}"
        return f"{base}{route}"

    def _finish(
        self,
        log: ExecutionLogger,
        status: str,
        operation_id: str | None,
        **kwargs: Any,
    ) -> ExecutionResult:
        result = ExecutionResult(status=status, action=operation_id, log=log.to_log(), **kwargs)
        if result.ok:
            logger.info("Action %s -> %s", operation_id or "navigate", status)
        else:
            logger.info("Action %s -> %s: %s", operation_id or "navigate", status, result.error)
        return result


def _as_text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _schema_problem(exc: SchemaError | UnknownType) -> str:
    if isinstance(exc, UnknownType):
        return f"unknown type {exc.type!r}"
    return exc.message
