"""
Base classes for LLM providers.

The AI gateway only ever sends a short system + user conversation and asks
for a JSON object back, so the provider contract is a single `chat` call.
OpenAI and Groq both speak the OpenAI chat-completions protocol and share
`ChatCompletionsProvider`; Ollama has its own REST shape.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional, List, Dict, Any
from enum import Enum


class ProviderStatus(str, Enum):
    """Status of an LLM provider."""
    AVAILABLE = "available"
    RATE_LIMITED = "rate_limited"
    ERROR = "error"
    NOT_CONFIGURED = "not_configured"


class ProviderError(Exception):
    """A provider could not produce a completion."""

    def __init__(self, message: str, provider: str = "", rate_limited: bool = False):
        super().__init__(message)
        self.provider = provider
        self.rate_limited = rate_limited


@dataclass
class LLMConfig:
    """Connection and sampling defaults for one provider."""
    provider_name: str
    model: str
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    temperature: float = 0.7
    max_tokens: int = 2000
    timeout: float = 30


@dataclass
class Message:
    """A single message in a conversation."""
    role: str  # "system", "user", "assistant"
    content: str

    def to_dict(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass
class LLMResponse:
    """Response from an LLM provider."""
    content: str
    model: str
    provider: str
    usage: Dict[str, int] = field(default_factory=dict)
    finish_reason: str = "stop"

    @property
    def tokens_used(self) -> int:
        return self.usage.get("total_tokens", 0)

    def provenance(self) -> Dict[str, Any]:
        """Where a generated artifact came from, for question metadata."""
        return {"provider": self.provider, "model": self.model, "tokens": self.tokens_used}


def looks_rate_limited(error: BaseException) -> bool:
    """Does a backend error mean "slow down"?"""
    text = str(error).lower()
    return "rate" in text or "429" in text or "quota" in text


class LLMProvider(ABC):
    """
    Abstract base class for LLM providers.

    `chat` must raise ProviderError for every backend failure and set
    `rate_limited` when the backend asked us to back off, so the manager can
    switch providers instead of retrying.
    """

    def __init__(self, config: LLMConfig):
        self.config = config
        self._status = ProviderStatus.NOT_CONFIGURED

    @property
    def name(self) -> str:
        return self.config.provider_name

    @property
    def model(self) -> str:
        return self.config.model

    @property
    def status(self) -> ProviderStatus:
        return self._status

    def mark(self, status: ProviderStatus):
        self._status = status

    @abstractmethod
    def is_available(self) -> bool:
        """Configured and not known to be failing."""

    @abstractmethod
    def chat(
        self,
        messages: List[Message],
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        json_mode: bool = False,
        **kwargs
    ) -> LLMResponse:
        """
        Send a chat completion request.

        Args:
            messages: List of conversation messages
            temperature: Override default temperature
            max_tokens: Override default max tokens
            json_mode: Request a JSON object reply
            **kwargs: Provider-specific parameters

        Returns:
            LLMResponse with the model's response

        Raises:
            ProviderError: on any backend failure
        """


class ChatCompletionsProvider(LLMProvider):
    """
    Shared body for SDKs exposing `client.chat.completions.create`.

    Subclasses build `self._client` (or leave it None when unconfigured) and
    set `label` for error messages.
    """

    label = "LLM"
    missing_key_hint = ""

    def __init__(self, config: LLMConfig, client=None):
        super().__init__(config)
        self._client = client if client is not None else self._build_client()
        self._status = ProviderStatus.AVAILABLE if self._client is not None else ProviderStatus.NOT_CONFIGURED

    def _build_client(self):
        return None

    def is_available(self) -> bool:
        return self._client is not None and self._status == ProviderStatus.AVAILABLE

    def build_request(
        self,
        messages: List[Message],
        temperature: Optional[float],
        max_tokens: Optional[int],
        json_mode: bool,
        **kwargs
    ) -> Dict[str, Any]:
        request = {
            "model": self.config.model,
            "messages": [m.to_dict() for m in messages],
            "temperature": self.config.temperature if temperature is None else temperature,
            "max_tokens": max_tokens or self.config.max_tokens,
        }
        if json_mode:
            request["response_format"] = {"type": "json_object"}
        request.update(kwargs)
        return request

    def chat(
        self,
        messages: List[Message],
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        json_mode: bool = False,
        **kwargs
    ) -> LLMResponse:
        if self._client is None:
            raise ProviderError(f"{self.label} is not configured. {self.missing_key_hint}".strip(), provider=self.name)

        request = self.build_request(messages, temperature, max_tokens, json_mode, **kwargs)
        try:
            completion = self._client.chat.completions.create(**request)
        except Exception as e:
            limited = looks_rate_limited(e)
            self._status = ProviderStatus.RATE_LIMITED if limited else ProviderStatus.ERROR
            raise ProviderError(f"{self.label} request failed: {e}", provider=self.name, rate_limited=limited) from e

        self._status = ProviderStatus.AVAILABLE
        return self.parse_completion(completion)

    def parse_completion(self, completion) -> LLMResponse:
        if not getattr(completion, "choices", None):
            raise ProviderError(f"{self.label} returned no choices", provider=self.name)
        choice = completion.choices[0]
        usage = {}
        if getattr(completion, "usage", None):
            usage = {
                "prompt_tokens": completion.usage.prompt_tokens,
                "completion_tokens": completion.usage.completion_tokens,
                "total_tokens": completion.usage.total_tokens,
            }
        return LLMResponse(
            content=choice.message.content or "",
            model=getattr(completion, "model", None) or self.config.model,
            provider=self.name,
            usage=usage,
            finish_reason=choice.finish_reason or "stop",
        )


@dataclass
class ProviderInfo:
    """Quota facts used when picking a provider."""
    name: str
    is_local: bool
    rate_limit_requests_per_day: int


# Daily request quotas; the manager stops using a cloud provider near its limit
PROVIDER_INFO = {
    "openai": ProviderInfo(name="openai", is_local=False, rate_limit_requests_per_day=10000),
    "groq": ProviderInfo(name="groq", is_local=False, rate_limit_requests_per_day=1000),
    "ollama": ProviderInfo(name="ollama", is_local=True, rate_limit_requests_per_day=999999),
}
