"""
Configuration for the survey flow engine.

Settings are read from the environment (optionally seeded from a `.env` file)
once at startup and handed to `SurveyServices.from_settings`.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, List

from dotenv import load_dotenv


LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}")


@dataclass
class Settings:
    """Process-wide settings for the AI pipeline and cache."""

    # Provider preferences (in order of preference)
    provider_priority: List[str] = field(default_factory=lambda: ["openai", "groq", "ollama"])

    openai_api_key: Optional[str] = None
    openai_model: str = "gpt-4o"
    openai_base_url: Optional[str] = None

    groq_api_key: Optional[str] = None
    groq_model: str = "llama-3.3-70b-versatile"

    ollama_host: str = "http://localhost:11434"
    ollama_model: str = "mistral:latest"

    # Hard bound on every AI call, in seconds
    ai_timeout: float = 20.0
    ai_workers: int = 8

    # Generated content is cached for 24h, validation verdicts for 1h
    cache_ttl: int = 86400
    validation_cache_ttl: int = 3600
    redis_url: Optional[str] = None

    log_level: str = "INFO"

    @classmethod
    def from_env(cls, env_file: Optional[Path] = None) -> "Settings":
        """Build settings from environment variables, loading `.env` first if present."""
        load_dotenv(dotenv_path=env_file)

        priority = os.getenv("SURVEYFLOW_PROVIDERS", "openai,groq,ollama")
        return cls(
            provider_priority=[p.strip() for p in priority.split(",") if p.strip()],
            openai_api_key=os.getenv("OPENAI_API_KEY"),
            openai_model=os.getenv("OPENAI_MODEL", "gpt-4o"),
            openai_base_url=os.getenv("OPENAI_BASE_URL"),
            groq_api_key=os.getenv("GROQ_API_KEY"),
            groq_model=os.getenv("GROQ_MODEL", "llama-3.3-70b-versatile"),
            ollama_host=os.getenv("OLLAMA_HOST", "http://localhost:11434"),
            ollama_model=os.getenv("OLLAMA_MODEL", "mistral:latest"),
            ai_timeout=_env_float("SURVEYFLOW_AI_TIMEOUT", 20.0),
            ai_workers=_env_int("SURVEYFLOW_AI_WORKERS", 8),
            cache_ttl=_env_int("SURVEYFLOW_CACHE_TTL", 86400),
            validation_cache_ttl=_env_int("SURVEYFLOW_VALIDATION_CACHE_TTL", 3600),
            redis_url=os.getenv("REDIS_URL") or None,
            log_level=os.getenv("SURVEYFLOW_LOG_LEVEL", "INFO").upper(),
        )


def configure_logging(level: str = "INFO") -> None:
    """Install a single stream handler on the `surveyflow` logger."""
    logger = logging.getLogger("surveyflow")
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    if not any(getattr(h, "_surveyflow", False) for h in logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._surveyflow = True
        logger.addHandler(handler)
