"""
Groq LLM Provider.

Hosted open models with a free tier; the first fallback when OpenAI is
unavailable or rate limited. Keys: https://console.groq.com
"""

import os
from typing import Optional

from groq import Groq

from .base import ChatCompletionsProvider, LLMConfig


class GroqProvider(ChatCompletionsProvider):

    DEFAULT_MODEL = "llama-3.3-70b-versatile"
    label = "Groq"
    missing_key_hint = "Set GROQ_API_KEY."

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = DEFAULT_MODEL,
        timeout: float = 30,
        client=None,
    ):
        config = LLMConfig(
            provider_name="groq",
            model=model,
            api_key=api_key or os.environ.get("GROQ_API_KEY"),
            timeout=timeout,
        )
        super().__init__(config, client=client)

    def _build_client(self):
        if not self.config.api_key:
            return None
        return Groq(api_key=self.config.api_key, timeout=self.config.timeout, max_retries=0)


def create_groq_provider(
    model: str = GroqProvider.DEFAULT_MODEL,
    api_key: Optional[str] = None,
    timeout: float = 30,
) -> Optional[GroqProvider]:
    """Groq provider if GROQ_API_KEY (or `api_key`) is set, None otherwise."""
    api_key = api_key or os.environ.get("GROQ_API_KEY")
    if not api_key:
        return None
    return GroqProvider(api_key=api_key, model=model, timeout=timeout)
