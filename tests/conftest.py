"""Shared fixtures for PagePilot unit tests."""

from __future__ import annotations

import copy
import json
from pathlib import Path
from typing import Any

import pytest
import yaml

from pagepilot.engine.documents import LxmlNode, LxmlPage
from pagepilot.engine.manifest import Manifest, load_manifest


# ---------------------------------------------------------------------------
# Sample site: manifest + annotated pages
# ---------------------------------------------------------------------------

MANIFEST_DATA: dict[str, Any] = {
    "version": "0.1",
    "site": {"name": "Billing", "origin": "http://localhost:5173", "description": "Demo billing app"},
    "actions": {
        "invoice.create": {
            "title": "Create invoice",
            "scope": "invoices.write",
            "risk": "low",
            "confirmation": "optional",
            "idempotent": False,
            "inputSchema": {
                "type": "object",
                "required": ["customer_email", "amount", "currency"],
                "properties": {
                    "customer_email": {"type": "string", "format": "email"},
                    "amount": {"type": "number", "minimum": 0},
                    "currency": {"type": "string", "enum": ["EUR", "USD"]},
                    "memo": {"type": "string"},
                },
            },
            "outputSchema": {"type": "object", "properties": {"invoice_id": {"type": "string"}}},
        },
        "workspace.delete": {
            "title": "Delete workspace",
            "scope": "workspace.admin",
            "risk": "high",
            "confirmation": "required",
            "idempotent": False,
            "inputSchema": {"type": "object", "properties": {}},
            "outputSchema": {"type": "object"},
        },
        "profile.update": {
            "title": "Update profile",
            "scope": "profile.write",
            "risk": "low",
            "confirmation": "review",
            "idempotent": True,
            "inputSchema": {
                "type": "object",
                "required": ["display_name"],
                "properties": {
                    "display_name": {"type": "string"},
                    "newsletter": {"type": "boolean"},
                },
            },
            "outputSchema": {"type": "object"},
        },
    },
    "data": {
        "invoice.list": {
            "title": "Invoices",
            "scope": "invoices.read",
            "outputSchema": {"type": "array"},
        },
    },
    "pages": {
        "/invoices/new": {"title": "New invoice", "actions": ["invoice.create"]},
        "/settings": {
            "title": "Settings",
            "description": "Workspace and profile settings",
            "actions": ["workspace.delete", "profile.update"],
        },
        "/invoices": {"title": "Invoices", "data": ["invoice.list"]},
    },
}

INVOICE_HTML = """\
<html><body>
  <nav>
    <a href="/invoices" data-agent-kind="link" data-agent-page="/invoices">Invoices</a>
    <a href="/settings" data-agent-kind="link" data-agent-page="/settings">Settings</a>
  </nav>
  <form data-agent-kind="action" data-agent-action="invoice.create"
        data-agent-danger="low" data-agent-confirm="optional" data-agent-scope="invoices.write">
    <div class="row">
      <input name="email" data-agent-kind="field" data-agent-field="customer_email">
    </div>
    <input name="amount" data-agent-kind="field" data-agent-field="amount">
    <select name="currency" data-agent-kind="field" data-agent-field="currency">
      <option value="EUR">Euro</option>
      <option value="USD">US Dollar</option>
    </select>
    <textarea name="memo" data-agent-kind="field" data-agent-field="memo"></textarea>
    <button type="submit" data-agent-kind="action" data-agent-action="invoice.create.submit">Create</button>
    <div data-agent-kind="status" data-agent-output="invoice.create.status"></div>
  </form>
</body></html>
"""

SETTINGS_HTML = """\
<html><body>
  <section>
    <button data-agent-kind="action" data-agent-action="workspace.delete"
            data-agent-danger="high" data-agent-confirm="required">Delete workspace</button>
    <p data-agent-kind="status" data-agent-output="workspace.delete.status"></p>
  </section>
  <input name="display_name" data-agent-kind="field" data-agent-field="display_name"
         data-agent-for-action="profile.update">
  <form data-agent-kind="action" data-agent-action="profile.update" data-agent-confirm="review">
    <select name="newsletter" data-agent-kind="field" data-agent-field="newsletter">
      <option value="true">Yes</option>
      <option value="false">No</option>
    </select>
    <button data-agent-kind="action" data-agent-action="profile.update.submit">Save</button>
  </form>
</body></html>
"""

BASE_URL = "http://localhost:5173"


class FakeBackend:
    """TextBackend double: replays scripted replies (or raises scripted errors)."""

    def __init__(self, replies: list[Any]) -> None:
        self._replies = list(replies)
        self.calls: list[tuple[str, str]] = []

    def generate(self, user_prompt: str, system_prompt: str, json: bool = True) -> str:
        self.calls.append((user_prompt, system_prompt))
        reply = self._replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply

    def is_available(self) -> bool:
        return True

    def name(self) -> str:
        return "Fake"


def _invoice_submitted(page: LxmlPage, node: LxmlNode) -> None:
    status = page.find({"data-agent-output": "invoice.create.status"})
    status.set_text("Invoice INV-001 created")


def _workspace_deleted(page: LxmlPage, node: LxmlNode) -> None:
    status = page.find({"data-agent-output": "workspace.delete.status"})
    status.set_text("Workspace deleted")


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def manifest_data() -> dict[str, Any]:
    """A fresh, mutable copy of the sample manifest."""
    return copy.deepcopy(MANIFEST_DATA)


@pytest.fixture
def manifest(manifest_data: dict[str, Any]) -> Manifest:
    return load_manifest(manifest_data)


@pytest.fixture
def site_pages() -> LxmlPage:
    """Two-page virtual site starting on /invoices/new, with submit handlers."""
    page = LxmlPage(
        {"/invoices/new": INVOICE_HTML, "/settings": SETTINGS_HTML},
        base_url=BASE_URL,
    )
    page.on_click("invoice.create.submit", _invoice_submitted)
    page.on_click("workspace.delete", _workspace_deleted)
    return page


@pytest.fixture
def invoice_root() -> LxmlNode:
    return LxmlPage({"/invoices/new": INVOICE_HTML}).root()


@pytest.fixture
def manifest_file(tmp_path: Path) -> Path:
    path = tmp_path / "agent-manifest.json"
    path.write_text(json.dumps(MANIFEST_DATA, indent=2), encoding="utf-8")
    return path


@pytest.fixture
def tmp_project_dir(tmp_path: Path, manifest_file: Path) -> Path:
    """A .pagepilot/ project directory with config.yaml, manifest and page."""
    project_dir = tmp_path / ".pagepilot"
    project_dir.mkdir()
    (project_dir / "agent-manifest.json").write_text(manifest_file.read_text(encoding="utf-8"), encoding="utf-8")
    (project_dir / "invoice.html").write_text(INVOICE_HTML, encoding="utf-8")

    config_data = {
        "base_url": BASE_URL,
        "manifest": "agent-manifest.json",
        "logs_dir": "logs",
        "backend": "anthropic",
        "settle_seconds": 0,
    }
    (project_dir / "config.yaml").write_text(
        yaml.dump(config_data, default_flow_style=False), encoding="utf-8"
    )
    return project_dir


@pytest.fixture
def sample_config_yaml() -> str:
    """Return a valid PagePilot config.yaml as a string."""
    return """\
base_url: "http://localhost:5173/"
manifest: agent-manifest.json
logs_dir: logs
backend: ollama
ollama_url: "http://127.0.0.1:11434/"
max_attempts: 5
settle_seconds: 0.25
headless: false
timeout: 45
"""
