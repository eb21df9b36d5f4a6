"""
AI augmentation for surveys: question generation, adaptive follow-ups and
advisory answer validation, all behind a timeout-bounded gateway and a
coalescing response cache.
"""

from .cache import (
    CacheEntry,
    CacheStore,
    MemoryCacheStore,
    RedisCacheStore,
    ResponseCache,
    make_cache_key,
)
from .gateway import AIGateway, GenerationRequest, QualityVerdict
from .adaptive import AdaptiveInsertion, AdaptiveQuestionInserter
from .validation import DEFAULT_VERDICT, ValidationFallbackPolicy

__all__ = [
    "CacheEntry",
    "CacheStore",
    "MemoryCacheStore",
    "RedisCacheStore",
    "ResponseCache",
    "make_cache_key",
    "AIGateway",
    "GenerationRequest",
    "QualityVerdict",
    "AdaptiveInsertion",
    "AdaptiveQuestionInserter",
    "DEFAULT_VERDICT",
    "ValidationFallbackPolicy",
]
