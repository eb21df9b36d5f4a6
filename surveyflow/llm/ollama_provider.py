"""
Ollama LLM Provider.

Runs open models on a local Ollama server: no API key, no rate limits.
Last resort in the provider chain, and the default for offline development.

Install: https://ollama.ai, then `ollama pull mistral`
"""

import logging
import os
from typing import Any, Dict, List, Optional

import requests

from .base import (
    LLMProvider,
    LLMConfig,
    LLMResponse,
    Message,
    ProviderError,
    ProviderStatus,
)


logger = logging.getLogger(__name__)


class OllamaProvider(LLMProvider):
    """Ollama REST chat endpoint (`/api/chat`, non-streaming)."""

    DEFAULT_MODEL = "mistral:latest"
    DEFAULT_HOST = "http://localhost:11434"

    def __init__(
        self,
        model: str = DEFAULT_MODEL,
        host: Optional[str] = None,
        timeout: float = 120,
        session: Optional[requests.Session] = None,
    ):
        """
        Args:
            model: Model to use
            host: Ollama server URL (default: OLLAMA_HOST or http://localhost:11434)
            timeout: Per-request timeout; local inference can be slow
            session: requests session to reuse connections
        """
        host = (host or os.environ.get("OLLAMA_HOST", self.DEFAULT_HOST)).rstrip("/")
        super().__init__(LLMConfig(provider_name="ollama", model=model, base_url=host, timeout=timeout))
        self._session = session or requests.Session()

    @property
    def host(self) -> str:
        return self.config.base_url

    def _tags(self) -> List[str]:
        response = self._session.get(f"{self.host}/api/tags", timeout=5)
        response.raise_for_status()
        return [m.get("name", "") for m in response.json().get("models", [])]

    def check_availability(self) -> bool:
        """Probe the server and the model; updates status."""
        try:
            names = self._tags()
        except (requests.RequestException, ValueError):
            self._status = ProviderStatus.NOT_CONFIGURED
            return False

        self._status = ProviderStatus.AVAILABLE
        if not any(self.config.model in name for name in names):
            logger.warning(
                "Ollama model '%s' not found locally (available: %s). Pull it with: ollama pull %s",
                self.config.model, names, self.config.model,
            )
        return True

    def list_local_models(self) -> List[str]:
        try:
            return self._tags()
        except requests.RequestException as e:
            raise ProviderError(f"Could not list Ollama models: {e}", provider="ollama") from e

    def is_available(self) -> bool:
        return self._status == ProviderStatus.AVAILABLE

    def chat(
        self,
        messages: List[Message],
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        json_mode: bool = False,
        **kwargs
    ) -> LLMResponse:
        payload: Dict[str, Any] = {
            "model": self.config.model,
            "messages": [m.to_dict() for m in messages],
            "stream": False,
            "options": {
                "temperature": self.config.temperature if temperature is None else temperature,
                "num_predict": max_tokens or self.config.max_tokens,
            },
        }
        if json_mode:
            payload["format"] = "json"

        try:
            response = self._session.post(f"{self.host}/api/chat", json=payload, timeout=self.config.timeout)
            response.raise_for_status()
            data = response.json()
        except requests.exceptions.Timeout as e:
            raise ProviderError(f"Ollama request timed out after {self.config.timeout}s", provider="ollama") from e
        except (requests.RequestException, ValueError) as e:
            self._status = ProviderStatus.ERROR
            raise ProviderError(f"Ollama request failed: {e}", provider="ollama") from e

        message = data.get("message") if isinstance(data, dict) else None
        if not isinstance(message, dict) or "content" not in message:
            raise ProviderError("Ollama reply has no message content", provider="ollama")

        self._status = ProviderStatus.AVAILABLE
        prompt_tokens = data.get("prompt_eval_count", 0)
        completion_tokens = data.get("eval_count", 0)
        return LLMResponse(
            content=message["content"],
            model=data.get("model", self.config.model),
            provider="ollama",
            usage={
                "prompt_tokens": prompt_tokens,
                "completion_tokens": completion_tokens,
                "total_tokens": prompt_tokens + completion_tokens,
            },
            finish_reason=data.get("done_reason", "stop"),
        )


def create_ollama_provider(
    model: str = OllamaProvider.DEFAULT_MODEL,
    host: Optional[str] = None,
    timeout: float = 120,
) -> Optional[OllamaProvider]:
    """OllamaProvider if the server answers, None otherwise."""
    provider = OllamaProvider(model=model, host=host, timeout=timeout)
    if provider.check_availability():
        return provider
    return None
