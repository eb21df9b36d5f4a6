"""
Tests for adaptive follow-up insertion.
"""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from surveyflow.ai.adaptive import AdaptiveInsertion, AdaptiveQuestionInserter
from surveyflow.ai.cache import ResponseCache
from surveyflow.branching.graph import FlowGraph
from surveyflow.branching.resolver import FlowResolver
from surveyflow.errors import UpstreamError
from surveyflow.schemas.answers import AnswerHistory
from surveyflow.schemas.survey import AIConfiguration, Provenance, Question, QuestionType, SurveyDefinition


def follow_up(text, confidence=0.9):
    return Question(
        id="ai_q_1",
        type=QuestionType.TEXT,
        text=text,
        provenance=Provenance.AI_GENERATED,
        confidence=confidence,
    )


class FakeGateway:
    """Returns scripted follow-ups, or raises."""

    def __init__(self, questions=None, error=None):
        self.questions = questions or []
        self.error = error
        self.calls = []

    def generate_follow_ups(self, survey_context, previous_responses, current_index, max_questions=3):
        self.calls.append({
            "context": survey_context,
            "previous": previous_responses,
            "index": current_index,
            "max": max_questions,
        })
        if self.error is not None:
            raise self.error
        return list(self.questions)


def make_graph():
    questions = [Question(id=f"q{i}", type=QuestionType.TEXT, text=f"Question {i}", order=i) for i in range(1, 5)]
    return FlowGraph.build(questions, [], survey_id="s1")


def session(limit=3, enabled=True, threshold=0.8):
    return AdaptiveInsertion(session_id="sess", enabled=enabled, limit=limit, confidence_threshold=threshold)


def test_inserts_follow_ups_after_current_question():
    gateway = FakeGateway([follow_up("Why is that?"), follow_up("Since when?")])
    inserter = AdaptiveQuestionInserter(gateway, ResponseCache())
    graph = make_graph()
    history = AnswerHistory()
    history.append("q1", "no water")
    state = session()

    new_graph = inserter.maybe_insert(state, graph, history)

    assert new_graph.question_ids == ("q1", "q1__ai1", "q1__ai2", "q2", "q3", "q4")
    assert new_graph.revision == 1
    assert new_graph.get("q1__ai1").provenance == Provenance.AI_GENERATED
    assert state.inserted == ["q1__ai1", "q1__ai2"]
    assert gateway.calls[0]["previous"] == [{"question_id": "q1", "question": "Question 1", "answer": "no water"}]
    assert FlowResolver().resolve(new_graph, history).question_id == "q1__ai1"


def test_cap_of_one_grafts_only_the_first_opportunity():
    gateway = FakeGateway([follow_up("Tell me more")])
    inserter = AdaptiveQuestionInserter(gateway, ResponseCache())
    state = session(limit=1)
    graph = make_graph()
    history = AnswerHistory()

    history.append("q1", "a")
    graph = inserter.maybe_insert(state, graph, history)
    assert len(graph) == 5

    history.append("q1__ai1", "b")
    history.append("q2", "c")
    again = inserter.maybe_insert(state, graph, history)

    assert again is graph
    assert len(gateway.calls) == 1
    assert state.remaining == 0


def test_generation_timeout_leaves_graph_unchanged():
    gateway = FakeGateway(error=UpstreamError("generate_follow_ups timed out after 20s"))
    inserter = AdaptiveQuestionInserter(gateway, ResponseCache())
    graph = make_graph()
    history = AnswerHistory()
    history.append("q1", "a")

    result = inserter.maybe_insert(session(), graph, history)

    assert result is graph
    assert FlowResolver().resolve(result, history).question_id == "q2"


def test_low_confidence_follow_ups_are_discarded():
    gateway = FakeGateway([follow_up("Weak", confidence=0.3), follow_up("Strong", confidence=0.95)])
    inserter = AdaptiveQuestionInserter(gateway, ResponseCache())
    history = AnswerHistory()
    history.append("q1", "a")

    graph = inserter.maybe_insert(session(threshold=0.8), make_graph(), history)

    assert graph.get("q1__ai1").text == "Strong"
    assert "q1__ai2" not in graph


def test_disabled_session_never_calls_gateway():
    gateway = FakeGateway([follow_up("x")])
    inserter = AdaptiveQuestionInserter(gateway, ResponseCache())
    history = AnswerHistory()
    history.append("q1", "a")
    graph = make_graph()

    assert inserter.maybe_insert(session(enabled=False), graph, history) is graph
    assert gateway.calls == []


def test_identical_context_is_served_from_cache():
    gateway = FakeGateway([follow_up("Cached?")])
    inserter = AdaptiveQuestionInserter(gateway, ResponseCache())

    for session_id in ("a", "b"):
        history = AnswerHistory()
        history.append("q1", "same answer")
        state = AdaptiveInsertion(session_id=session_id, enabled=True)
        graph = inserter.maybe_insert(state, make_graph(), history)
        assert "q1__ai1" in graph

    assert len(gateway.calls) == 1


def test_for_survey_reads_ai_configuration():
    config = AIConfiguration.from_dict({
        "adaptiveQuestioning": {"enabled": True, "max_adaptive_questions": 1, "context_window": 2},
        "questionGeneration": {"confidence_threshold": 0.6},
    })
    survey = SurveyDefinition(survey_id="s1", title="Water", ai_config=config)

    state = AdaptiveInsertion.for_survey(survey, "sess")

    assert state.enabled and state.limit == 1 and state.context_window == 2
    assert state.confidence_threshold == 0.6
    assert state.survey_context["title"] == "Water"

    survey.ai_enabled = False
    assert AdaptiveInsertion.for_survey(survey, "sess").enabled is False
