"""
LLM Manager - one chat entry point over several providers.

Providers are tried in priority order. A rate-limited provider is parked for
a cool-down and the next one is used straight away; other failures are
retried with exponential backoff before falling over. The AI gateway calls
the manager from many worker threads at once, so all bookkeeping happens
under a lock.
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from .base import (
    LLMProvider,
    LLMResponse,
    Message,
    ProviderError,
    ProviderStatus,
    PROVIDER_INFO,
)
from .groq_provider import create_groq_provider
from .ollama_provider import create_ollama_provider
from .openai_provider import create_openai_provider


logger = logging.getLogger(__name__)


@dataclass
class ProviderUsage:
    """Per-provider counters; daily ones feed quota-aware selection."""
    requests_today: int = 0
    tokens_today: int = 0
    successes: int = 0
    errors: int = 0
    last_request: Optional[datetime] = None
    last_error: Optional[str] = None
    parked_until: Optional[datetime] = None

    def near_quota(self, provider_name: str, buffer: float) -> bool:
        info = PROVIDER_INFO.get(provider_name)
        if info is None or info.is_local:
            return False
        limit = info.rate_limit_requests_per_day
        return self.requests_today >= limit - int(limit * buffer)


@dataclass
class LLMManagerConfig:
    provider_priority: List[str] = field(default_factory=lambda: ["openai", "groq", "ollama"])
    auto_fallback: bool = True
    max_retries: int = 2                 # Extra attempts per provider
    backoff: float = 1.0                 # Seconds, doubled per attempt
    rate_limit_cooldown: timedelta = timedelta(hours=1)
    rate_limit_buffer: float = 0.1       # Leave the last 10% of a daily quota unused


class LLMManager:
    """
    Usage:
        manager = LLMManager(providers={"openai": OpenAIProvider(...)})
        response = manager.chat([Message(role="user", content="Hello")], json_mode=True)
    """

    def __init__(
        self,
        config: Optional[LLMManagerConfig] = None,
        providers: Optional[Dict[str, LLMProvider]] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.config = config or LLMManagerConfig()
        self._providers: Dict[str, LLMProvider] = dict(providers or {})
        self._usage: Dict[str, ProviderUsage] = {name: ProviderUsage() for name in self._providers}
        self._current: Optional[str] = None
        self._lock = threading.Lock()
        self._sleep = sleep
        self._clock = clock

    def add_provider(self, provider: LLMProvider):
        with self._lock:
            self._providers[provider.name] = provider
            self._usage.setdefault(provider.name, ProviderUsage())
        logger.info("LLM provider registered: %s (%s)", provider.name, provider.model)

    @property
    def available_providers(self) -> List[str]:
        return list(self._providers)

    @property
    def is_available(self) -> bool:
        """True if some provider could take a request right now."""
        return self._next_provider(exclude=()) is not None

    # ------------------------------------------------------------------
    # Selection and bookkeeping
    # ------------------------------------------------------------------

    def _next_provider(self, exclude) -> Optional[str]:
        now = self._clock()
        with self._lock:
            for name in self.config.provider_priority:
                provider = self._providers.get(name)
                if provider is None or name in exclude:
                    continue
                usage = self._usage.setdefault(name, ProviderUsage())
                if provider.status == ProviderStatus.RATE_LIMITED:
                    if usage.parked_until and now < usage.parked_until:
                        continue
                    provider.mark(ProviderStatus.AVAILABLE)
                    usage.parked_until = None
                if usage.near_quota(name, self.config.rate_limit_buffer):
                    continue
                self._current = name
                return name
            self._current = None
            return None

    def _record(self, name: str, response: Optional[LLMResponse] = None, error: Optional[ProviderError] = None):
        with self._lock:
            usage = self._usage.setdefault(name, ProviderUsage())
            if response is not None:
                usage.requests_today += 1
                usage.tokens_today += response.tokens_used
                usage.successes += 1
                usage.last_request = self._clock()
            if error is not None:
                usage.errors += 1
                usage.last_error = str(error)[:200]
                if error.rate_limited:
                    usage.parked_until = self._clock() + self.config.rate_limit_cooldown
                    self._providers[name].mark(ProviderStatus.RATE_LIMITED)

    def _attempt(self, name: str, messages: List[Message], **kwargs) -> LLMResponse:
        provider = self._providers[name]
        for attempt in range(self.config.max_retries + 1):
            try:
                response = provider.chat(messages=messages, **kwargs)
            except ProviderError as e:
                self._record(name, error=e)
                if e.rate_limited or attempt == self.config.max_retries:
                    raise
                wait = (2 ** attempt) * self.config.backoff
                logger.warning(
                    "LLM error on %s, retrying in %.1fs (%d/%d): %s",
                    name, wait, attempt + 1, self.config.max_retries, e,
                )
                self._sleep(wait)
                continue
            self._record(name, response=response)
            return response
        raise ProviderError(f"{name}: no attempts made", provider=name)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def chat(
        self,
        messages: List[Message],
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        provider: Optional[str] = None,
        **kwargs
    ) -> LLMResponse:
        """
        Send a chat completion request with retry and fallback.

        Args:
            messages: Conversation messages
            temperature: Override the provider default
            max_tokens: Override the provider default
            provider: Force one provider; disables fallback
            **kwargs: Passed through, e.g. json_mode=True

        Raises:
            ProviderError: the last provider's error once every provider failed
        """
        kwargs.update(temperature=temperature, max_tokens=max_tokens)

        if provider:
            if provider not in self._providers:
                raise ProviderError(f"Provider '{provider}' not available", provider=provider)
            return self._attempt(provider, messages, **kwargs)

        tried: List[str] = []
        last_error: Optional[ProviderError] = None
        while True:
            name = self._next_provider(exclude=tried)
            if name is None:
                break
            try:
                return self._attempt(name, messages, **kwargs)
            except ProviderError as e:
                last_error = e
                tried.append(name)
                if not self.config.auto_fallback:
                    raise
                logger.warning("LLM provider %s failed, trying next provider: %s", name, e)

        if last_error is not None:
            raise last_error
        raise ProviderError(
            "No LLM providers available. Set OPENAI_API_KEY or GROQ_API_KEY, "
            "or run a local Ollama server (ollama serve)."
        )

    def complete(self, prompt: str, system_prompt: Optional[str] = None, **kwargs) -> LLMResponse:
        """Single-prompt convenience wrapper around chat()."""
        messages = []
        if system_prompt:
            messages.append(Message(role="system", content=system_prompt))
        messages.append(Message(role="user", content=prompt))
        return self.chat(messages, **kwargs)

    def get_status(self) -> Dict[str, Any]:
        with self._lock:
            providers = {}
            for name, p in self._providers.items():
                usage = self._usage.get(name, ProviderUsage())
                info = PROVIDER_INFO.get(name)
                providers[name] = {
                    "status": p.status.value,
                    "available": p.is_available(),
                    "model": p.model,
                    "is_local": info.is_local if info else False,
                    "requests_today": usage.requests_today,
                    "tokens_today": usage.tokens_today,
                    "parked_until": usage.parked_until.isoformat() if usage.parked_until else None,
                }
            return {"current_provider": self._current, "providers": providers}

    @property
    def session_stats(self) -> Dict[str, Any]:
        with self._lock:
            ok = sum(u.successes for u in self._usage.values())
            failed = sum(u.errors for u in self._usage.values())
        return {
            "providers_available": list(self._providers),
            "current_provider": self._current,
            "total_requests": ok + failed,
            "successful_requests": ok,
            "failed_requests": failed,
            "success_rate": round(ok / max(ok + failed, 1), 2),
        }

    def reset_daily_usage(self):
        """Reset daily counters (call at midnight)."""
        with self._lock:
            for usage in self._usage.values():
                usage.requests_today = 0
                usage.tokens_today = 0


def create_llm_manager(settings) -> LLMManager:
    """
    Build a manager with every provider the settings configure.

    Args:
        settings: surveyflow.config.Settings

    Returns:
        LLMManager; it may have no providers, in which case every call
        raises ProviderError and the AI features degrade.
    """
    manager = LLMManager(LLMManagerConfig(provider_priority=list(settings.provider_priority)))
    factories = {
        "openai": lambda: create_openai_provider(
            api_key=settings.openai_api_key,
            model=settings.openai_model,
            base_url=settings.openai_base_url,
            timeout=settings.ai_timeout,
        ),
        "groq": lambda: create_groq_provider(
            model=settings.groq_model,
            api_key=settings.groq_api_key,
            timeout=settings.ai_timeout,
        ),
        "ollama": lambda: create_ollama_provider(
            model=settings.ollama_model,
            host=settings.ollama_host,
            timeout=settings.ai_timeout,
        ),
    }

    for name in settings.provider_priority:
        factory = factories.get(name)
        if factory is None:
            logger.warning("Unknown LLM provider '%s' in SURVEYFLOW_PROVIDERS, ignoring", name)
            continue
        provider = factory()
        if provider is None:
            logger.info("LLM provider %s not configured", name)
            continue
        manager.add_provider(provider)

    if not manager.available_providers:
        logger.warning("No LLM providers configured; AI features will fall back to defaults")
    return manager
