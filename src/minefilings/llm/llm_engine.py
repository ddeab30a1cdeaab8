from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, cast

import ollama
import requests

from minefilings.config import ConfigurationError, Settings, settings

logger = logging.getLogger(__name__)


class LlmEngineABC(ABC):
    model: str

    @abstractmethod
    def complete_json(
        self,
        system: str,
        user: str,
        temperature: float = 0.1,
        max_tokens: int = 1000,
    ) -> str:
        """Return the raw assistant content, which the caller parses as JSON."""


class OllamaEngine(LlmEngineABC):
    """Chat using a local Ollama server via the official SDK."""

    def __init__(
        self,
        model: str = settings.LLM_MODEL,
        host: str = settings.LLM_BASE_URL,
        timeout: float = settings.LLM_TIMEOUT_S,
    ) -> None:
        self.model = model
        self.client = ollama.Client(host=host, timeout=timeout)

    def complete_json(
        self,
        system: str,
        user: str,
        temperature: float = 0.1,
        max_tokens: int = 1000,
    ) -> str:
        response = self.client.chat(
            model=self.model,
            messages=[
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            format="json",
            options={"temperature": temperature, "num_predict": max_tokens},
        )
        return cast(str, response["message"]["content"])


class OpenAICompatibleEngine(LlmEngineABC):
    """Any server exposing an OpenAI-style ``/chat/completions`` endpoint.

    Parameters
    ----------
    base_url :
        Base URL including the API version prefix, e.g. ``https://api.openai.com/v1``.
    api_key :
        Sent as a bearer token when given; local servers usually need none.
    """

    _PATH = "/chat/completions"

    def __init__(
        self,
        model: str,
        base_url: str,
        api_key: str | None = None,
        timeout: float = settings.LLM_TIMEOUT_S,
    ) -> None:
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout

    def complete_json(
        self,
        system: str,
        user: str,
        temperature: float = 0.1,
        max_tokens: int = 1000,
    ) -> str:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        payload: dict[str, Any] = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            "temperature": temperature,
            "max_tokens": max_tokens,
            "response_format": {"type": "json_object"},
        }
        resp = requests.post(
            f"{self.base_url}{self._PATH}",
            json=payload,
            headers=headers,
            timeout=self.timeout,
        )
        resp.raise_for_status()
        return cast(str, resp.json()["choices"][0]["message"]["content"])


def build_engine(config: Settings = settings) -> LlmEngineABC:
    """Construct the engine named by ``LLM_BACKEND``."""
    if not config.LLM_MODEL:
        raise ConfigurationError("AI extraction is enabled but LLM_MODEL is empty")
    if config.LLM_BACKEND == "ollama":
        return OllamaEngine(
            model=config.LLM_MODEL,
            host=config.LLM_BASE_URL,
            timeout=config.LLM_TIMEOUT_S,
        )
    if config.LLM_BACKEND == "openai":
        if not config.LLM_BASE_URL:
            raise ConfigurationError("LLM_BACKEND=openai requires LLM_BASE_URL")
        api_key = config.LLM_API_KEY.get_secret_value() if config.LLM_API_KEY else None
        return OpenAICompatibleEngine(
            model=config.LLM_MODEL,
            base_url=config.LLM_BASE_URL,
            api_key=api_key,
            timeout=config.LLM_TIMEOUT_S,
        )
    raise ConfigurationError(f"Unknown LLM_BACKEND: {config.LLM_BACKEND!r}")
