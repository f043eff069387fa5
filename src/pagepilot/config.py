"""PagePilot configuration management."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from pagepilot.models import (
    DEFAULT_BACKEND_TIMEOUT,
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_OLLAMA_URL,
    DEFAULT_SETTLE_SECONDS,
    MODELS,
)

_BACKENDS = ("anthropic", "ollama")


class PagePilotConfigError(Exception):
    """Raised when configuration is invalid or missing."""

    pass


@dataclass
class PagePilotConfig:
    """Configuration for a PagePilot session."""

    # Target application
    base_url: str = ""
    manifest_path: Path | None = None

    # Paths
    project_dir: Path = field(default_factory=lambda: Path(".pagepilot"))
    logs_dir: Path | None = None

    # Text-generation backend
    backend: str = "anthropic"
    model: str = MODELS["planner"]
    ollama_url: str = DEFAULT_OLLAMA_URL
    anthropic_api_key: str = field(default="", repr=False)

    # Behavior
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    settle_seconds: float = DEFAULT_SETTLE_SECONDS
    headless: bool = True
    timeout: int = DEFAULT_BACKEND_TIMEOUT

    @classmethod
    def from_file(cls, config_path: Path) -> PagePilotConfig:
        """Load config from a YAML file."""
        if not config_path.exists():
            raise PagePilotConfigError(
                f"Config file not found: {config_path}\n\nTo fix: create .pagepilot/config.yaml"
            )
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise PagePilotConfigError(f"Config file must be a YAML mapping: {config_path}")
        return cls._from_dict(data, config_path.parent)

    @classmethod
    def _from_dict(cls, data: dict[str, Any], project_dir: Path) -> PagePilotConfig:
        """Create config from a dictionary."""
        config = cls()
        config.project_dir = project_dir

        if "base_url" in data:
            config.base_url = str(data["base_url"]).rstrip("/")
        if "manifest" in data:
            config.manifest_path = project_dir / data["manifest"]
        if "logs_dir" in data:
            config.logs_dir = project_dir / data["logs_dir"]

        if "backend" in data:
            backend = str(data["backend"]).lower()
            if backend not in _BACKENDS:
                raise PagePilotConfigError(
                    f"Unknown backend: {data['backend']}\n\n"
                    f"Expected one of: {', '.join(_BACKENDS)}"
                )
            config.backend = backend
            if backend == "ollama" and "model" not in data:
                config.model = MODELS["ollama"]
        if "model" in data:
            config.model = str(data["model"])
        if "ollama_url" in data:
            config.ollama_url = str(data["ollama_url"]).rstrip("/")

        if "max_attempts" in data:
            config.max_attempts = int(data["max_attempts"])
            if config.max_attempts < 1:
                raise PagePilotConfigError("max_attempts must be at least 1")
        if "settle_seconds" in data:
            config.settle_seconds = float(data["settle_seconds"])
        if "headless" in data:
            config.headless = bool(data["headless"])
        if "timeout" in data:
            config.timeout = int(data["timeout"])

        return config


def resolve_project_dir(start: Path | None = None) -> Path:
    """Find the .pagepilot/ project directory, searching upward from *start* (cwd)."""
    current = start or Path.cwd()
    for directory in (current, *current.parents):
        candidate = directory / ".pagepilot"
        if candidate.is_dir():
            return candidate
    return current / ".pagepilot"


def load_project_config(project_dir: Path) -> PagePilotConfig:
    """Config from ``<project_dir>/config.yaml`` when present, defaults otherwise."""
    config_path = project_dir / "config.yaml"
    if config_path.is_file():
        return PagePilotConfig.from_file(config_path)
    config = PagePilotConfig()
    config.project_dir = project_dir
    return config
