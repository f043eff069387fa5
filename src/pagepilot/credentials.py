"""Anthropic API key lookup for PagePilot.

Sources, highest priority first:

1. ``ANTHROPIC_API_KEY`` in the environment
2. ``ANTHROPIC_API_KEY=`` in ``./.env``
3. ``anthropic_api_key`` / ``api_key`` in the project ``config.yaml``
4. the same keys in ``~/.pagepilot/config.yaml``
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable, Iterator
from pathlib import Path

import yaml

from pagepilot.config import PagePilotConfigError

ENV_VAR = "ANTHROPIC_API_KEY"

logger = logging.getLogger("pagepilot.credentials")


def resolve_api_key(project_dir: Path | None = None) -> str:
    """Return the first API key found, or raise :class:`PagePilotConfigError`."""
    for source, lookup in _sources(project_dir):
        key = lookup()
        if key:
            logger.debug("API key %s taken from %s", mask_key(key), source)
            return key

    raise PagePilotConfigError(
        f"{ENV_VAR} not set\n\n"
        "The anthropic backend needs an API key to plan actions.\n\n"
        "To fix:\n"
        f"  export {ENV_VAR}=sk-ant-your-key-here\n"
        "  or: set backend: ollama in .pagepilot/config.yaml"
    )


def mask_key(key: str) -> str:
    """``sk-ant-...xyz``: first 7 and last 3 characters, ``***`` for short keys."""
    if len(key) <= 10:
        return "***"
    return f"{key[:7]}...{key[-3:]}"


def _sources(project_dir: Path | None) -> Iterator[tuple[str, Callable[[], str | None]]]:
    yield "environment", lambda: os.environ.get(ENV_VAR)
    yield ".env", lambda: _parse_env_file(Path(".env"), ENV_VAR)
    if project_dir:
        project_config = project_dir / "config.yaml"
        yield str(project_config), lambda: _parse_yaml_key(project_config)
    global_config = Path.home() / ".pagepilot" / "config.yaml"
    yield str(global_config), lambda: _parse_yaml_key(global_config)


def _parse_env_file(path: Path, key_name: str) -> str | None:
    """Value of ``key_name`` in a dotenv file, quotes stripped."""
    if not path.is_file():
        return None
    try:
        lines = path.read_text(encoding="utf-8").splitlines()
    except OSError:
        return None
    for raw in lines:
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        name, sep, value = line.partition("=")
        if sep and name.strip() == key_name:
            return value.strip().strip("'\"")
    return None


def _parse_yaml_key(path: Path) -> str | None:
    if not path.is_file():
        return None
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError):
        return None
    if not isinstance(data, dict):
        return None
    return data.get("anthropic_api_key") or data.get("api_key")
