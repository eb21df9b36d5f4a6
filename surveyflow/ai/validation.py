"""
Advisory AI validation of submitted answers.

Validation never blocks a respondent: whatever goes wrong (timeout, provider
outage, malformed reply, broken cache) the policy answers with the fixed
default verdict.
"""

import logging
from typing import Any, Dict, Optional

from ..schemas.survey import Question
from .cache import ResponseCache, make_cache_key
from .gateway import AIGateway, QualityVerdict


logger = logging.getLogger(__name__)


DEFAULT_VERDICT = QualityVerdict(
    is_valid=True,
    confidence=0.5,
    issues=("validation unavailable",),
    quality_score=5,
    suggestions=(),
)


class ValidationFallbackPolicy:
    """Wraps AIGateway.validate_response with caching and a fixed fallback."""

    def __init__(self, gateway: Optional[AIGateway], cache: Optional[ResponseCache] = None, ttl: int = 3600):
        self.gateway = gateway
        self.cache = cache
        self.ttl = ttl

    def cache_key(self, answer: Any, question: Question, metadata: Optional[Dict[str, Any]]) -> str:
        return make_cache_key("validation", {
            "question_id": question.id,
            "question_type": question.type.value,
            "question_text": question.text,
            "answer": answer,
            "metadata": metadata or {},
        })

    def assess(self, answer: Any, question: Question, metadata: Optional[Dict[str, Any]] = None) -> QualityVerdict:
        """Judge an answer. Always returns a verdict, never raises."""
        if self.gateway is None:
            return DEFAULT_VERDICT

        def compute():
            return self.gateway.validate_response(answer, question, metadata).to_dict()

        try:
            if self.cache is None:
                data = compute()
            else:
                data = self.cache.get_or_compute(self.cache_key(answer, question, metadata), compute, self.ttl)
            return QualityVerdict.from_dict(data)
        except Exception as e:
            logger.warning("Validation for %s unavailable, using default verdict: %s", question.id, e)
            return DEFAULT_VERDICT
