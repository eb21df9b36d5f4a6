"""
AI Gateway - the only place the flow engine talks to a language model.

Every call runs on a worker thread and is bounded by an explicit timeout.
Replies are schema-validated before anything is returned. Timeouts, provider
failures and malformed payloads all surface as UpstreamError; callers decide
how to degrade.
"""

import logging
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from ..errors import UpstreamError
from ..llm.base import LLMResponse, Message
from ..prompts import (
    QUESTION_GENERATION_SYSTEM_PROMPT,
    RESPONSE_VALIDATION_SYSTEM_PROMPT,
    create_follow_up_prompt,
    create_question_generation_prompt,
    create_response_validation_prompt,
)
from ..schemas.survey import Provenance, Question
from .parsing import parse_generated_questions, parse_validation_verdict


logger = logging.getLogger(__name__)


@dataclass
class GenerationRequest:
    """Parameters for generating a fresh question set."""
    prompts: List[str]
    category: str = "other"
    target_audience: str = "general_public"
    language: str = "en"
    question_count: int = 10

    def __post_init__(self):
        if isinstance(self.prompts, str):
            self.prompts = [self.prompts]
        if not 1 <= self.question_count <= 50:
            raise ValueError("question_count must be between 1 and 50")

    def to_dict(self) -> dict:
        return {
            "prompts": list(self.prompts),
            "category": self.category,
            "target_audience": self.target_audience,
            "language": self.language,
            "question_count": self.question_count,
        }


@dataclass(frozen=True)
class QualityVerdict:
    """Advisory judgement on one answer."""
    is_valid: bool
    confidence: float
    issues: tuple = ()
    quality_score: float = 5
    suggestions: tuple = ()

    def meets_threshold(self, quality_threshold: float) -> bool:
        """True when quality_score (0-10) reaches the 0-1 threshold."""
        return self.is_valid and (self.quality_score / 10.0) >= quality_threshold

    def to_dict(self) -> dict:
        return {
            "is_valid": self.is_valid,
            "confidence": self.confidence,
            "issues": list(self.issues),
            "quality_score": self.quality_score,
            "suggestions": list(self.suggestions),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "QualityVerdict":
        return cls(
            is_valid=bool(data["is_valid"]),
            confidence=float(data["confidence"]),
            issues=tuple(data.get("issues", ())),
            quality_score=data.get("quality_score", 5),
            suggestions=tuple(data.get("suggestions", ())),
        )


class AIGateway:
    """
    Timeout-bounded question generation and response validation.

    Args:
        llm: Anything with a `chat(messages, temperature=, max_tokens=, json_mode=)`
            method returning an LLMResponse, normally an LLMManager
        timeout: Seconds before a call is abandoned
        max_workers: Size of the worker pool shared by all sessions
    """

    def __init__(self, llm, timeout: float = 20.0, max_workers: int = 8):
        self.llm = llm
        self.timeout = timeout
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="surveyflow-ai")

    def close(self):
        """Stop accepting work. Abandoned calls finish in the background."""
        self._executor.shutdown(wait=False)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    # ------------------------------------------------------------------

    def _call(self, operation: str, fn: Callable[[], Any]) -> Any:
        try:
            future = self._executor.submit(fn)
        except RuntimeError as e:
            raise UpstreamError(f"{operation}: gateway is closed", operation=operation, cause=e)

        try:
            return future.result(timeout=self.timeout)
        except FutureTimeout as e:
            future.cancel()
            logger.warning("AI call %s timed out after %.1fs", operation, self.timeout)
            raise UpstreamError(
                f"{operation} timed out after {self.timeout}s", operation=operation, cause=e
            )
        except UpstreamError:
            raise
        except Exception as e:
            logger.warning("AI call %s failed: %s", operation, e)
            raise UpstreamError(f"{operation} failed: {e}", operation=operation, cause=e)

    def _chat(self, system_prompt: str, prompt: str, temperature: float, max_tokens: int):
        messages = [
            Message(role="system", content=system_prompt),
            Message(role="user", content=prompt),
        ]
        return self.llm.chat(messages, temperature=temperature, max_tokens=max_tokens, json_mode=True)

    @staticmethod
    def _to_questions(items: List[Dict[str, Any]], response: LLMResponse, extra: Dict[str, Any]) -> List[Question]:
        generated_at = datetime.now().isoformat()
        questions = []
        for i, item in enumerate(items):
            metadata = {"generated_at": generated_at, **response.provenance(), **extra}
            questions.append(Question(
                id=f"ai_q_{i + 1}",
                type=item["type"],
                text=item["text"],
                order=i + 1,
                required=item["required"],
                description=item["description"],
                options=item["options"],
                validation=item["validation"],
                provenance=Provenance.AI_GENERATED,
                confidence=item["confidence"],
                metadata=metadata,
            ))
        return questions

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def generate_questions(self, request: GenerationRequest) -> List[Question]:
        """
        Generate a question set for a survey author.

        Returns:
            Questions in order, provenance ai_generated, ids ai_q_1..N

        Raises:
            UpstreamError: timeout, provider failure or malformed reply
        """
        operation = "generate_questions"
        prompt = create_question_generation_prompt(
            prompts=request.prompts,
            category=request.category,
            target_audience=request.target_audience,
            language=request.language,
            question_count=request.question_count,
        )

        def work():
            response = self._chat(QUESTION_GENERATION_SYSTEM_PROMPT, prompt, temperature=0.7, max_tokens=2000)
            return response, parse_generated_questions(response.content, operation)

        response, items = self._call(operation, work)
        logger.info("Generated %d AI questions for category %s", len(items), request.category)
        return self._to_questions(
            items, response, {"category": request.category, "target_audience": request.target_audience}
        )

    def generate_follow_ups(
        self,
        survey_context: Dict[str, Any],
        previous_responses: List[Dict[str, Any]],
        current_index: int,
        max_questions: int = 3,
    ) -> List[Question]:
        """
        Generate 1..max_questions adaptive follow-ups for a running session.

        Raises:
            UpstreamError: timeout, provider failure or malformed reply
        """
        operation = "generate_follow_ups"
        prompt = create_follow_up_prompt(survey_context, previous_responses, current_index, max_questions)

        def work():
            response = self._chat(QUESTION_GENERATION_SYSTEM_PROMPT, prompt, temperature=0.8, max_tokens=1000)
            return response, parse_generated_questions(response.content, operation)

        response, items = self._call(operation, work)
        logger.info("Generated %d adaptive follow-ups at index %d", len(items), current_index)
        return self._to_questions(items, response, {"adaptive": True, "current_index": current_index})

    def validate_response(
        self,
        answer: Any,
        question: Question,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> QualityVerdict:
        """
        Ask the model to judge one answer.

        Raises:
            UpstreamError: timeout, provider failure or malformed reply
        """
        operation = "validate_response"
        prompt = create_response_validation_prompt(question.text, question.type.value, answer, metadata)

        def work():
            response = self._chat(RESPONSE_VALIDATION_SYSTEM_PROMPT, prompt, temperature=0.3, max_tokens=500)
            return parse_validation_verdict(response.content, operation)

        verdict = QualityVerdict(**self._call(operation, work))
        logger.info("AI validation for %s: valid=%s confidence=%.2f", question.id, verdict.is_valid, verdict.confidence)
        return verdict
