"""
Adaptive follow-up insertion.

After an answer, the inserter may ask the AI gateway for follow-up questions
and graft them into the session's flow graph right after the question just
answered. It is strictly best-effort: any failure leaves the graph exactly as
it was and the respondent continues on the authored path.
"""

import dataclasses
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..branching.graph import FlowGraph
from ..schemas.answers import AnswerHistory
from ..schemas.survey import Question, SurveyDefinition
from .cache import ResponseCache, make_cache_key
from .gateway import AIGateway


logger = logging.getLogger(__name__)


@dataclass
class AdaptiveInsertion:
    """Per-session adaptive state: switches, cap, and what was inserted so far."""
    session_id: str
    enabled: bool = False
    limit: int = 3
    confidence_threshold: float = 0.8
    context_window: int = 3
    survey_context: Dict[str, Any] = field(default_factory=dict)
    inserted: List[str] = field(default_factory=list)

    @classmethod
    def for_survey(cls, survey: SurveyDefinition, session_id: str) -> "AdaptiveInsertion":
        adaptive = survey.ai_config.adaptive_questioning
        return cls(
            session_id=session_id,
            enabled=survey.adaptive_enabled,
            limit=adaptive.max_adaptive_questions,
            confidence_threshold=survey.ai_config.question_generation.confidence_threshold,
            context_window=adaptive.context_window,
            survey_context={
                "survey_id": survey.survey_id,
                "title": survey.title,
                "description": survey.description,
                "category": survey.category,
                "target_audience": survey.target_audience,
                "language": survey.language,
            },
        )

    @property
    def remaining(self) -> int:
        return max(self.limit - len(self.inserted), 0)

    def record(self, question_ids: List[str]):
        self.inserted.extend(question_ids)


class AdaptiveQuestionInserter:
    """Requests follow-ups through the cache and grafts them into a FlowGraph."""

    def __init__(self, gateway: Optional[AIGateway], cache: Optional[ResponseCache] = None, ttl: int = 86400):
        self.gateway = gateway
        self.cache = cache
        self.ttl = ttl

    def cache_key(self, survey_id: str, window: List[Dict[str, Any]]) -> str:
        return make_cache_key("follow_ups", {"survey_id": survey_id, "answers": window})

    def maybe_insert(self, session: AdaptiveInsertion, graph: FlowGraph, history: AnswerHistory) -> FlowGraph:
        """
        Possibly return a new graph with follow-ups after the last answered question.

        Returns:
            The new graph, or `graph` itself when nothing was inserted
        """
        if not session.enabled or self.gateway is None:
            return graph
        if session.remaining <= 0:
            logger.debug("Session %s reached its adaptive cap of %d", session.session_id, session.limit)
            return graph

        last = history.last()
        if last is None or last.question_id not in graph:
            return graph
        current = last.question_id

        window = []
        for entry in history.recent(session.context_window):
            question = graph.get(entry.question_id)
            window.append({
                "question_id": entry.question_id,
                "question": question.text if question else "",
                "answer": entry.value,
            })
        current_index = graph.position(current)
        max_questions = min(session.remaining, 3)

        def compute():
            questions = self.gateway.generate_follow_ups(
                session.survey_context, window, current_index, max_questions=max_questions
            )
            return [q.to_dict() for q in questions]

        try:
            key = self.cache_key(graph.survey_id, window)
            if self.cache is None:
                data = compute()
            else:
                data = self.cache.get_or_compute(key, compute, self.ttl)
            candidates = [Question.from_dict(d) for d in data]
        except Exception as e:
            logger.warning(
                "Adaptive follow-ups unavailable for session %s after %s: %s",
                session.session_id, current, e,
            )
            return graph

        kept = [
            q for q in candidates
            if q.is_ai_generated and (q.confidence or 0.0) >= session.confidence_threshold
        ]
        dropped = len(candidates) - len(kept)
        if dropped:
            logger.info("Discarded %d follow-ups below confidence %.2f", dropped, session.confidence_threshold)
        kept = kept[:session.remaining]
        if not kept:
            return graph

        placed = []
        taken = set(graph.question_ids)
        n = 1
        for q in kept:
            while f"{current}__ai{n}" in taken:
                n += 1
            new_id = f"{current}__ai{n}"
            taken.add(new_id)
            placed.append(dataclasses.replace(q, id=new_id))

        try:
            new_graph = graph.with_inserted(current, placed)
        except (KeyError, ValueError) as e:
            logger.warning("Could not insert follow-ups after %s: %s", current, e)
            return graph

        session.record([q.id for q in placed])
        logger.info(
            "Inserted %d adaptive questions after %s (session %s, revision %d)",
            len(placed), current, session.session_id, new_graph.revision,
        )
        return new_graph
