"""
Respondent sessions.

A SurveySession ties one respondent's AnswerHistory to a FlowGraph and the
shared services: resolver, AI gateway, cache, adaptive inserter, validation
policy and event bus. Services are built once per process
(`SurveyServices.from_settings`) and passed to every session.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Optional

from .ai.adaptive import AdaptiveInsertion, AdaptiveQuestionInserter
from .ai.cache import MemoryCacheStore, RedisCacheStore, ResponseCache, make_cache_key
from .ai.gateway import AIGateway, GenerationRequest, QualityVerdict
from .ai.validation import DEFAULT_VERDICT, ValidationFallbackPolicy
from .branching.events import EventBus, FlowEvent, FlowEventType
from .branching.graph import FlowGraph
from .branching.resolver import FlowResolver, FlowState, FlowStatus
from .config import Settings
from .errors import AnswerRejected
from .llm.manager import create_llm_manager
from .schemas.answers import AnswerHistory, check_answer
from .schemas.survey import Question, SurveyDefinition


logger = logging.getLogger(__name__)


@dataclass
class SurveyServices:
    """Process-wide collaborators shared by all sessions."""
    resolver: FlowResolver = field(default_factory=FlowResolver)
    events: EventBus = field(default_factory=EventBus)
    cache: ResponseCache = field(default_factory=ResponseCache)
    gateway: Optional[AIGateway] = None
    inserter: Optional[AdaptiveQuestionInserter] = None
    validator: Optional[ValidationFallbackPolicy] = None
    question_ttl: int = 86400

    @classmethod
    def from_settings(cls, settings: Settings, llm=None) -> "SurveyServices":
        """
        Wire up the AI pipeline from settings.

        Args:
            settings: Loaded Settings
            llm: Chat backend to use instead of building an LLMManager
        """
        if settings.redis_url:
            store = RedisCacheStore(url=settings.redis_url)
            logger.info("Using Redis cache at %s", settings.redis_url)
        else:
            store = MemoryCacheStore()
        cache = ResponseCache(store, default_ttl=settings.cache_ttl, wait_timeout=settings.ai_timeout * 2)

        if llm is None:
            llm = create_llm_manager(settings)
        gateway = AIGateway(llm, timeout=settings.ai_timeout, max_workers=settings.ai_workers)

        return cls(
            cache=cache,
            gateway=gateway,
            inserter=AdaptiveQuestionInserter(gateway, cache, ttl=settings.cache_ttl),
            validator=ValidationFallbackPolicy(gateway, cache, ttl=settings.validation_cache_ttl),
            question_ttl=settings.cache_ttl,
        )

    @classmethod
    def offline(cls) -> "SurveyServices":
        """Services with every AI feature switched off."""
        return cls()

    def generate_questions(self, request: GenerationRequest) -> list[Question]:
        """
        Author-side question generation, cached by request parameters.

        Raises:
            UpstreamError: generation failed; nothing is cached
        """
        if self.gateway is None:
            return []
        key = make_cache_key("ai_questions", request.to_dict())
        data = self.cache.get_or_compute(
            key,
            lambda: [q.to_dict() for q in self.gateway.generate_questions(request)],
            self.question_ttl,
        )
        return [Question.from_dict(d) for d in data]

    def close(self):
        if self.gateway is not None:
            self.gateway.close()


@dataclass(frozen=True)
class SubmissionResult:
    """What happened after one answer."""
    state: FlowState
    verdict: Optional[QualityVerdict] = None
    inserted: tuple[str, ...] = ()
    flagged: bool = False

    def to_dict(self) -> dict:
        return {
            "state": self.state.to_dict(),
            "verdict": self.verdict.to_dict() if self.verdict else None,
            "inserted": list(self.inserted),
            "flagged": self.flagged,
        }


class SurveySession:
    """
    One respondent walking through one survey version.

    Building the session builds the FlowGraph, so an unpublishable survey
    (cycle, dangling reference) fails here and never reaches a respondent.
    """

    def __init__(
        self,
        survey: SurveyDefinition,
        services: Optional[SurveyServices] = None,
        session_id: Optional[str] = None,
        strict: bool = True,
    ):
        self.survey = survey
        self.services = services or SurveyServices.offline()
        self.session_id = session_id or uuid.uuid4().hex
        self._graph: FlowGraph = survey.build_flow_graph(strict=strict)
        self._history = AnswerHistory()
        self._state: Optional[FlowState] = None
        self.adaptive = AdaptiveInsertion.for_survey(survey, self.session_id)

    @property
    def graph(self) -> FlowGraph:
        return self._graph

    @property
    def history(self) -> AnswerHistory:
        return self._history

    @property
    def state(self) -> Optional[FlowState]:
        return self._state

    @property
    def current_question(self) -> Optional[Question]:
        if self._state is None:
            return None
        return self._graph.get(self._state.question_id)

    def _publish(self, event_type: FlowEventType, question_id: Optional[str] = None, reason: str = "", **payload: Any):
        self.services.events.publish(FlowEvent(
            type=event_type,
            survey_id=self.survey.survey_id,
            session_id=self.session_id,
            question_id=question_id,
            reason=reason,
            payload=payload,
        ))

    def _announce(self, previous: Optional[FlowState], state: FlowState):
        if state == previous:
            return
        if state.status == FlowStatus.AWAITING_ANSWER:
            self._publish(FlowEventType.QUESTION_CHANGED, question_id=state.question_id, skipped=list(state.skipped))
        elif state.status == FlowStatus.COMPLETED:
            self._publish(FlowEventType.SURVEY_COMPLETED, reason=state.reason)
        else:
            self._publish(
                FlowEventType.SURVEY_TERMINATED,
                reason=state.reason,
                rule_id=state.rule.rule_id if state.rule else None,
            )

    def start(self) -> FlowState:
        """Resolve the first question. Calling it again returns the current state."""
        if self._state is None:
            self._state = self.services.resolver.start(self._graph)
            logger.info("Session %s started on survey %s v%d", self.session_id, self.survey.survey_id, self.survey.version)
            self._announce(None, self._state)
        return self._state

    def submit_answer(self, question_id: str, value: Any, metadata: Optional[dict] = None) -> SubmissionResult:
        """
        Record an answer and move the session forward.

        Raises:
            AnswerRejected: the survey is finished, the question is not the
                current one, or the answer fails the local checks
        """
        state = self.start()
        if state.is_finished:
            raise AnswerRejected(question_id, [f"Survey is already {state.status.value}"])
        if question_id != state.question_id:
            raise AnswerRejected(question_id, [f"Expected an answer for '{state.question_id}'"])

        question = self._graph.get(question_id)
        issues = check_answer(question, value)
        if issues:
            raise AnswerRejected(question_id, issues)

        self._history.append(question_id, value)
        resolver = self.services.resolver
        decision = resolver.resolve(self._graph, self._history)

        inserted: tuple[str, ...] = ()
        inserter = self.services.inserter
        if inserter is not None and decision.status != FlowStatus.TERMINATED and not decision.jumped:
            new_graph = inserter.maybe_insert(self.adaptive, self._graph, self._history)
            if new_graph is not self._graph:
                inserted = new_graph.insertions[-1].question_ids
                self._graph = new_graph
                decision = resolver.resolve(self._graph, self._history)
                self._publish(
                    FlowEventType.QUESTIONS_INSERTED,
                    question_id=question_id,
                    inserted=list(inserted),
                    revision=new_graph.revision,
                )

        previous = self._state
        self._state = decision
        self._announce(previous, decision)

        verdict = None
        flagged = False
        if self.services.validator is not None and self.survey.validation_enabled:
            verdict = self.services.validator.assess(value, question, metadata)
            threshold = self.survey.ai_config.response_validation.quality_threshold
            # The fallback verdict means "unknown", which is never flagged
            flagged = verdict != DEFAULT_VERDICT and not verdict.meets_threshold(threshold)
            if flagged:
                logger.info(
                    "Answer to %s flagged in session %s (quality %s)", question_id, self.session_id, verdict.quality_score
                )

        return SubmissionResult(state=decision, verdict=verdict, inserted=inserted, flagged=flagged)

    def progress(self) -> dict:
        return self.services.resolver.progress(self._graph, self._history)

    def to_dict(self) -> dict:
        return {
            "session_id": self.session_id,
            "survey_id": self.survey.survey_id,
            "version": self.survey.version,
            "revision": self._graph.revision,
            "state": self._state.to_dict() if self._state else None,
            "answers": self._history.to_list(),
            "adaptive_inserted": list(self.adaptive.inserted),
        }
