"""
OpenAI Provider.

Primary backend for question generation and response validation. Works
against api.openai.com or any OpenAI-compatible endpoint via `base_url`.
"""

import os
from typing import Optional

from openai import OpenAI

from .base import ChatCompletionsProvider, LLMConfig


class OpenAIProvider(ChatCompletionsProvider):
    """OpenAI chat completions with JSON-object response support."""

    DEFAULT_MODEL = "gpt-4o"
    label = "OpenAI"
    missing_key_hint = "Set OPENAI_API_KEY."

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = DEFAULT_MODEL,
        base_url: Optional[str] = None,
        timeout: float = 30,
        client=None,
    ):
        """
        Args:
            api_key: OpenAI API key (or set OPENAI_API_KEY env var)
            model: Model to use
            base_url: Custom base URL for compatible endpoints
            timeout: Per-request timeout in seconds
            client: Pre-built client; tests inject a fake here
        """
        config = LLMConfig(
            provider_name="openai",
            model=model,
            api_key=api_key or os.getenv("OPENAI_API_KEY"),
            base_url=base_url,
            timeout=timeout,
        )
        super().__init__(config, client=client)

    def _build_client(self):
        if not self.config.api_key:
            return None
        client_kwargs = {
            "api_key": self.config.api_key,
            "timeout": self.config.timeout,
            "max_retries": 0,  # Retries are the manager's job
        }
        if self.config.base_url:
            client_kwargs["base_url"] = self.config.base_url
        return OpenAI(**client_kwargs)


def create_openai_provider(
    api_key: Optional[str] = None,
    model: str = OpenAIProvider.DEFAULT_MODEL,
    base_url: Optional[str] = None,
    timeout: float = 30,
) -> Optional[OpenAIProvider]:
    """
    Factory function to create an OpenAI provider if configured.

    Returns:
        OpenAIProvider if an API key is available, None otherwise
    """
    api_key = api_key or os.getenv("OPENAI_API_KEY")
    if not api_key:
        return None
    return OpenAIProvider(api_key=api_key, model=model, base_url=base_url, timeout=timeout)
