"""
LLM providers for the survey AI pipeline.

Supports:
- OpenAI (primary, cloud-based)
- Groq (fallback, cloud-based, free tier)
- Ollama (last resort, local, free)
"""

from .base import (
    ChatCompletionsProvider,
    LLMConfig,
    LLMProvider,
    LLMResponse,
    Message,
    ProviderError,
    ProviderStatus,
)
from .openai_provider import OpenAIProvider
from .groq_provider import GroqProvider
from .ollama_provider import OllamaProvider
from .manager import LLMManager, LLMManagerConfig, create_llm_manager

__all__ = [
    "ChatCompletionsProvider",
    "LLMConfig",
    "LLMProvider",
    "LLMResponse",
    "Message",
    "ProviderError",
    "ProviderStatus",
    "OpenAIProvider",
    "GroqProvider",
    "OllamaProvider",
    "LLMManager",
    "LLMManagerConfig",
    "create_llm_manager",
]
