"""
Flow Resolver - decides what a respondent sees next.

Given a FlowGraph and an AnswerHistory the resolver replays every answer
through the conditional rules and returns one of:

- AwaitingAnswer(question_id)
- Completed
- Terminated(rule)

Resolution is a pure function of (graph, history): no randomness and no
clock reads. Rule problems are logged and degrade to ordinal advancement;
nothing raised here reaches a respondent.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from ..errors import RuleConfigurationError
from ..schemas.answers import AnswerHistory
from ..schemas.survey import ActionType, ConditionalRule
from .graph import FlowGraph
from .rules import RuleEvaluator


logger = logging.getLogger(__name__)


class FlowStatus(str, Enum):
    """Where a session stands."""
    AWAITING_ANSWER = "awaiting_answer"
    COMPLETED = "completed"
    TERMINATED = "terminated"


@dataclass(frozen=True)
class FlowState:
    """Resolver output."""
    status: FlowStatus
    question_id: Optional[str] = None
    rule: Optional[ConditionalRule] = None
    reason: str = ""
    skipped: tuple[str, ...] = ()    # Bypassed by the last skip_to

    @classmethod
    def awaiting(
        cls,
        question_id: str,
        rule: Optional[ConditionalRule] = None,
        skipped: tuple[str, ...] = (),
    ) -> "FlowState":
        return cls(FlowStatus.AWAITING_ANSWER, question_id=question_id, rule=rule, skipped=skipped)

    @classmethod
    def completed(cls) -> "FlowState":
        return cls(FlowStatus.COMPLETED, reason="No visible questions remain")

    @classmethod
    def terminated(cls, rule: ConditionalRule) -> "FlowState":
        return cls(FlowStatus.TERMINATED, rule=rule, reason=f"Ended by rule '{rule.rule_id}'")

    @property
    def is_finished(self) -> bool:
        return self.status != FlowStatus.AWAITING_ANSWER

    @property
    def jumped(self) -> bool:
        """True when a skip_to rule chose the current question, even with nothing skipped."""
        return self.status == FlowStatus.AWAITING_ANSWER and self.rule is not None

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "question_id": self.question_id,
            "rule_id": self.rule.rule_id if self.rule else None,
            "reason": self.reason,
            "skipped": list(self.skipped),
        }


@dataclass
class _Replay:
    """Mutable scratch state for one resolution pass."""
    hidden: set[str]
    answered: set[str] = field(default_factory=set)
    state: Optional[FlowState] = None


class FlowResolver:
    """
    Walks a FlowGraph for an answer history.

    Transition for an answer to question q:
    1. Evaluate q's rules in declared order.
    2. Any fired end_survey wins -> Terminated.
    3. Else the first fired skip_to -> AwaitingAnswer(target).
    4. Else show/hide effects update the visibility mask and the next
       visible, unanswered question after q is presented.
    5. Nothing left -> Completed.
    """

    def __init__(self, evaluator: Optional[RuleEvaluator] = None):
        self.evaluator = evaluator or RuleEvaluator()

    def start(self, graph: FlowGraph) -> FlowState:
        """Initial state for an empty history."""
        return self.resolve(graph, AnswerHistory())

    def resolve(self, graph: FlowGraph, history: AnswerHistory) -> FlowState:
        """Compute the next state for `history` against `graph`."""
        replay = _Replay(hidden=set(graph.show_targets()))
        replay.state = self._first_visible(graph, replay, None)

        for entry in history:
            if replay.state.is_finished:
                logger.warning(
                    "Answer to %s recorded after the survey finished (%s); ignoring",
                    entry.question_id, replay.state.status.value,
                )
                break
            if entry.question_id not in graph:
                logger.warning(
                    "Answer to %s has no question in survey %s rev %s; ignoring",
                    entry.question_id, graph.survey_id or "?", graph.revision,
                )
                continue
            replay.answered.add(entry.question_id)
            replay.state = self._transition(graph, replay, entry.question_id, entry.value)

        return replay.state

    def visible_questions(self, graph: FlowGraph, history: AnswerHistory) -> list[str]:
        """Ids of unanswered questions that would currently be shown, in order."""
        replay = _Replay(hidden=set(graph.show_targets()))
        for entry in history:
            if entry.question_id in graph:
                replay.answered.add(entry.question_id)
                fired = self._fired_rules(graph, entry.question_id, entry.value)
                self._apply_visibility(graph, replay, fired)
        return [
            q.id for q in graph.questions
            if q.id not in replay.hidden and q.id not in replay.answered
        ]

    def progress(self, graph: FlowGraph, history: AnswerHistory) -> dict[str, Any]:
        """Progress info for display."""
        state = self.resolve(graph, history)
        answered = len([e for e in history if e.question_id in graph])
        if state.is_finished:
            remaining = 0
        else:
            # Questions a skip_to already jumped over are not ahead of the respondent
            current = graph.position(state.question_id)
            remaining = len([
                qid for qid in self.visible_questions(graph, history)
                if graph.position(qid) >= current
            ])
        total = answered + remaining
        return {
            "status": state.status.value,
            "answered": answered,
            "remaining": remaining,
            "percent": int((answered / total) * 100) if total else 100,
            "current_question_id": state.question_id,
        }

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _fired_rules(self, graph: FlowGraph, question_id: str, answer: Any) -> list[ConditionalRule]:
        fired = []
        for rule in graph.rules_for(question_id):
            outcome = self.evaluator.explain(rule.condition, answer)
            if outcome.problem:
                issue = RuleConfigurationError(
                    f"Rule '{rule.rule_id}' on {question_id}: {outcome.problem}",
                    rule_id=rule.rule_id,
                    question_id=question_id,
                )
                logger.warning("%s", issue)
            if outcome.matched:
                fired.append(rule)
        return fired

    def _apply_visibility(self, graph: FlowGraph, replay: _Replay, fired: list[ConditionalRule]):
        decided = set()
        for rule in fired:
            if rule.action.type not in (ActionType.SHOW_QUESTION, ActionType.HIDE_QUESTION):
                continue
            target = rule.target_question_id
            if target not in graph:
                logger.warning(
                    "Rule '%s' targets unknown question '%s' (question not found); ignoring",
                    rule.rule_id, target,
                )
                continue
            # First applicable rule wins per target within one answer
            if target in decided:
                continue
            decided.add(target)
            if rule.action.type == ActionType.SHOW_QUESTION:
                replay.hidden.discard(target)
            else:
                replay.hidden.add(target)

    def _transition(self, graph: FlowGraph, replay: _Replay, question_id: str, answer: Any) -> FlowState:
        fired = self._fired_rules(graph, question_id, answer)

        for rule in fired:
            if rule.action.type == ActionType.END_SURVEY:
                logger.info("Survey %s terminated by rule '%s'", graph.survey_id or "?", rule.rule_id)
                return FlowState.terminated(rule)

        self._apply_visibility(graph, replay, fired)

        for rule in fired:
            if rule.action.type != ActionType.SKIP_TO:
                continue
            target = rule.target_question_id
            if target not in graph:
                logger.warning(
                    "Rule '%s' skips to unknown question '%s' (question not found); "
                    "falling back to next question",
                    rule.rule_id, target,
                )
                break
            if graph.position(target) <= graph.position(question_id):
                logger.warning(
                    "Rule '%s' skips backwards from %s to %s; falling back to next question",
                    rule.rule_id, question_id, target,
                )
                break
            if target in replay.answered:
                logger.warning("Rule '%s' skips to already answered %s; ignoring", rule.rule_id, target)
                break
            skipped = tuple(q.id for q in graph.questions_between(question_id, target))
            return FlowState.awaiting(target, rule=rule, skipped=skipped)

        return self._first_visible(graph, replay, question_id)

    def _first_visible(self, graph: FlowGraph, replay: _Replay, after: Optional[str]) -> FlowState:
        candidates = graph.questions if after is None else graph.questions_after(after)
        for q in candidates:
            if q.id in replay.hidden or q.id in replay.answered:
                continue
            return FlowState.awaiting(q.id)
        return FlowState.completed()
