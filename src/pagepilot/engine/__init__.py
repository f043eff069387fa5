"""PagePilot engine -- the action execution pipeline.

- discover / ActionCatalog: operations annotated on the current page
- Planner: natural language -> PlannerOutcome via a TextBackend, bounded retries
- parse_response: raw model text -> PlannerOutcome
- coerce_args / validate_input: argument repair, then JSON-Schema validation
- PolicyEngine: risk / confirmation gate
- ActionExecutor: fills and submits operations, returns ExecutionResult + ExecutionLog
- LxmlPage / PlaywrightPage: concrete page sessions
"""

from pagepilot.engine.action_executor import ActionExecutor, ExecutionResult, validate_runtime_response
from pagepilot.engine.backends import (
    AnthropicBackend,
    BackendAuthError,
    BackendConnectionError,
    BackendError,
    OllamaBackend,
    create_backend,
)
from pagepilot.engine.coercion import Coercion, CoerceResult, coerce_args
from pagepilot.engine.discovery import ActionCatalog, DiscoveredOperation, build_catalog, detect, discover
from pagepilot.engine.documents import LxmlPage, PlaywrightBrowser, PlaywrightPage
from pagepilot.engine.execution_log import ExecutionLog, ExecutionLogger
from pagepilot.engine.manifest import Manifest, ManifestError, load_manifest, validate_input
from pagepilot.engine.planner import Planner, PlannerError
from pagepilot.engine.policy import PolicyDecision, PolicyEngine
from pagepilot.engine.response_parser import (
    ActionOutcome,
    AnswerOutcome,
    NavigateOutcome,
    PlannerOutcome,
    ResponseParseError,
    parse_response,
)

__all__ = [
    "ActionCatalog",
    "ActionExecutor",
    "ActionOutcome",
    "AnswerOutcome",
    "AnthropicBackend",
    "BackendAuthError",
    "BackendConnectionError",
    "BackendError",
    "Coercion",
    "CoerceResult",
    "DiscoveredOperation",
    "ExecutionLog",
    "ExecutionLogger",
    "ExecutionResult",
    "LxmlPage",
    "Manifest",
    "ManifestError",
    "NavigateOutcome",
    "OllamaBackend",
    "Planner",
    "PlannerError",
    "PlannerOutcome",
    "PlaywrightBrowser",
    "PlaywrightPage",
    "PolicyDecision",
    "PolicyEngine",
    "ResponseParseError",
    "build_catalog",
    "coerce_args",
    "create_backend",
    "detect",
    "discover",
    "load_manifest",
    "parse_response",
    "validate_input",
    "validate_runtime_response",
]
