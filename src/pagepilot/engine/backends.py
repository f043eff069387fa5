"""Text-generation backends.

Concrete :class:`~pagepilot.engine.protocols.TextBackend` implementations:

- AnthropicBackend: Claude via the Anthropic Python SDK (lazy client)
- OllamaBackend: a local Ollama server over HTTP

Transport failures are raised as :class:`BackendError` subclasses so the
planner can refuse to retry them; only unparseable replies are retried.
"""

from __future__ import annotations

import logging
from typing import Any

import requests

from pagepilot.config import PagePilotConfig
from pagepilot.models import DEFAULT_BACKEND_TIMEOUT, DEFAULT_OLLAMA_URL, MODELS

logger = logging.getLogger("pagepilot.engine.backends")

_JSON_ONLY = (
    "\n\nRespond with ONLY a JSON object. No explanation, no markdown, "
    "no text before or after."
)


class BackendError(Exception):
    """Raised when a text backend fails at the transport level."""

    pass


class BackendConnectionError(BackendError):
    """The backend could not be reached."""

    pass


class BackendAuthError(BackendError):
    """The backend rejected our credentials."""

    pass


class AnthropicBackend:
    """Claude models through the Anthropic Messages API."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str = MODELS["planner"],
        max_tokens: int = 1024,
        timeout: float = DEFAULT_BACKEND_TIMEOUT,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._max_tokens = max_tokens
        self._timeout = timeout
        self._client: Any | None = None

    def _get_client(self) -> Any:
        """Return the cached Anthropic client, creating it lazily on first use."""
        if self._client is None:
            import anthropic

            # Retries are the planner's job; the SDK must not hide failures.
            kwargs: dict[str, Any] = {"max_retries": 0, "timeout": self._timeout}
            if self._api_key:
                kwargs["api_key"] = self._api_key
            self._client = anthropic.Anthropic(**kwargs)
        return self._client

    def generate(self, user_prompt: str, system_prompt: str, json: bool = True) -> str:
        import anthropic

        system = system_prompt + _JSON_ONLY if json else system_prompt
        client = self._get_client()
        try:
            response = client.messages.create(
                model=self._model,
                max_tokens=self._max_tokens,
                temperature=0.1,
                system=system,
                messages=[{"role": "user", "content": user_prompt}],
            )
        except (anthropic.AuthenticationError, anthropic.PermissionDeniedError) as exc:
            raise BackendAuthError(f"Anthropic API error: authentication failed: {exc}") from exc
        except anthropic.APIConnectionError as exc:
            raise BackendConnectionError(f"Anthropic API error: connection failed: {exc}") from exc
        except anthropic.APIError as exc:
            raise BackendError(f"Anthropic API error: {exc}") from exc

        raw_text = ""
        for block in response.content:
            if hasattr(block, "text"):
                raw_text += block.text
        logger.debug(
            "Anthropic %s: %d input / %d output tokens",
            self._model, response.usage.input_tokens, response.usage.output_tokens,
        )
        return raw_text

    def is_available(self) -> bool:
        try:
            self._get_client().models.list(limit=1)
        except Exception as exc:
            logger.debug("Anthropic backend unavailable: %s", exc)
            return False
        return True

    def name(self) -> str:
        return "Anthropic"


class OllamaBackend:
    """A local Ollama server (``/api/generate``)."""

    def __init__(
        self,
        base_url: str = DEFAULT_OLLAMA_URL,
        model: str = MODELS["ollama"],
        timeout: float = DEFAULT_BACKEND_TIMEOUT,
        session: requests.Session | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._model = model
        self._timeout = timeout
        self._session = session or requests.Session()

    def generate(self, user_prompt: str, system_prompt: str, json: bool = True) -> str:
        payload: dict[str, Any] = {
            "model": self._model,
            "prompt": user_prompt,
            "system": system_prompt,
            "stream": False,
            "options": {"temperature": 0.1},
        }
        if json:
            payload["format"] = "json"

        try:
            resp = self._session.post(
                f"{self._base_url}/api/generate", json=payload, timeout=self._timeout,
            )
        except (requests.ConnectionError, requests.Timeout) as exc:
            raise BackendConnectionError(
                f"Ollama API error: cannot reach {self._base_url}: {exc}"
            ) from exc

        if resp.status_code in (401, 403):
            raise BackendAuthError(f"Ollama API error: {resp.status_code} {resp.reason}")
        if not resp.ok:
            raise BackendError(f"Ollama API error: {resp.status_code} {resp.reason}")

        try:
            data = resp.json()
        except ValueError as exc:
            raise BackendError(f"Ollama API error: non-JSON body: {resp.text[:200]}") from exc
        return str(data.get("response", ""))

    def is_available(self) -> bool:
        try:
            resp = self._session.get(f"{self._base_url}/api/tags", timeout=3)
        except requests.RequestException:
            return False
        return resp.ok

    def name(self) -> str:
        return "Ollama"


def create_backend(config: PagePilotConfig) -> AnthropicBackend | OllamaBackend:
    """Build the backend named in *config*."""
    if config.backend == "ollama":
        return OllamaBackend(base_url=config.ollama_url, model=config.model, timeout=config.timeout)
    return AnthropicBackend(
        api_key=config.anthropic_api_key or None,
        model=config.model,
        timeout=config.timeout,
    )
