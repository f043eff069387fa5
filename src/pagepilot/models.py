"""Centralized constants: model IDs, pipeline bounds, and the annotation vocabulary."""

# Model IDs for the text-generation backends
MODELS = {
    "planner": "claude-haiku-4-5-20251001",
    "planner_heavy": "claude-sonnet-4-20250514",
    "ollama": "llama3.1:8b",
}

DEFAULT_OLLAMA_URL = "http://localhost:11434"

# Planner retry bound (total attempts, not retries)
DEFAULT_MAX_ATTEMPTS = 3

# Seconds to wait after clicking submit before reading the status sink
DEFAULT_SETTLE_SECONDS = 0.5

# Timeouts
DEFAULT_BACKEND_TIMEOUT = 30  # seconds
DEFAULT_PAGE_TIMEOUT = 30  # seconds

# Annotation attributes read from the live document
ATTR_KIND = "data-agent-kind"
ATTR_ACTION = "data-agent-action"
ATTR_FIELD = "data-agent-field"
ATTR_OUTPUT = "data-agent-output"
ATTR_DANGER = "data-agent-danger"
ATTR_CONFIRM = "data-agent-confirm"
ATTR_SCOPE = "data-agent-scope"
ATTR_IDEMPOTENT = "data-agent-idempotent"
ATTR_FOR_ACTION = "data-agent-for-action"
ATTR_VERSION = "data-agent-version"
ATTR_PAGE = "data-agent-page"

# Recognized element roles
ROLES = frozenset(
    {"action", "field", "status", "result", "collection", "item", "dialog", "step", "link"}
)

RISK_LEVELS = ("none", "low", "high")
CONFIRMATION_TIERS = ("never", "optional", "review", "required")
