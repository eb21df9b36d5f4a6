"""
Tests for next-question resolution.
"""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from surveyflow.branching.graph import FlowGraph
from surveyflow.branching.resolver import FlowResolver, FlowStatus
from surveyflow.schemas.answers import AnswerHistory
from surveyflow.schemas.survey import (
    ActionType,
    Condition,
    ConditionalRule,
    Provenance,
    Question,
    QuestionType,
    RuleAction,
)


resolver = FlowResolver()


def q(qid, order, qtype=QuestionType.TEXT):
    return Question(id=qid, type=qtype, text=f"Question {qid}", order=order)


def rule(rule_id, source, action, target=None, operator="equals", value=True):
    return ConditionalRule(
        source_question_id=source,
        condition=Condition(operator=operator, value=value),
        action=RuleAction(type=ActionType(action), target_question_id=target),
        rule_id=rule_id,
    )


def three_questions(rules=()):
    questions = [q("Q1", 1, QuestionType.BOOLEAN), q("Q2", 2), q("Q3", 3)]
    return FlowGraph.build(questions, list(rules), survey_id="s1")


def history_of(*pairs):
    history = AnswerHistory()
    for qid, value in pairs:
        history.append(qid, value)
    return history


# ═══════════════════════════════════════════════════════════════
# SCENARIOS
# ═══════════════════════════════════════════════════════════════

def test_skip_to_jumps_over_intervening_question():
    graph = three_questions([rule("r1", "Q1", "skip_to", "Q3")])
    history = history_of(("Q1", True))

    state = resolver.resolve(graph, history)

    assert state.status == FlowStatus.AWAITING_ANSWER
    assert state.question_id == "Q3"
    assert state.skipped == ("Q2",)

    history.append("Q3", "done")
    assert resolver.resolve(graph, history).status == FlowStatus.COMPLETED
    assert "Q2" not in history


def test_skip_to_not_fired_advances_normally():
    graph = three_questions([rule("r1", "Q1", "skip_to", "Q3")])
    state = resolver.resolve(graph, history_of(("Q1", False)))
    assert state.question_id == "Q2"


def test_sequential_answers_without_rules():
    graph = three_questions()
    history = AnswerHistory()

    assert resolver.start(graph).question_id == "Q1"

    history.append("Q1", True)
    assert resolver.resolve(graph, history).question_id == "Q2"
    history.append("Q2", "a")
    assert resolver.resolve(graph, history).question_id == "Q3"
    history.append("Q3", "b")
    assert resolver.resolve(graph, history).status == FlowStatus.COMPLETED


def test_end_survey_beats_skip_to():
    rules = [rule("skip", "Q1", "skip_to", "Q3"), rule("end", "Q1", "end_survey")]
    graph = three_questions(rules)

    state = resolver.resolve(graph, history_of(("Q1", "yes")))

    assert state.status == FlowStatus.TERMINATED
    assert state.rule.rule_id == "end"


def test_resolution_is_idempotent():
    rules = [rule("r1", "Q1", "hide_question", "Q2")]
    graph = three_questions(rules)
    history = history_of(("Q1", True))

    first = resolver.resolve(graph, history)
    second = resolver.resolve(graph, history)
    assert first == second
    assert first.question_id == "Q3"


def test_empty_survey_is_complete():
    graph = FlowGraph.build([], [])
    assert resolver.start(graph).status == FlowStatus.COMPLETED


# ═══════════════════════════════════════════════════════════════
# VISIBILITY
# ═══════════════════════════════════════════════════════════════

def test_show_question_target_starts_hidden():
    graph = three_questions([rule("r1", "Q1", "show_question", "Q2")])
    assert resolver.resolve(graph, history_of(("Q1", False))).question_id == "Q3"
    assert resolver.resolve(graph, history_of(("Q1", True))).question_id == "Q2"


def test_first_rule_wins_per_target():
    rules = [
        rule("hide", "Q1", "hide_question", "Q2"),
        rule("show", "Q1", "show_question", "Q2"),
    ]
    graph = three_questions(rules)
    assert resolver.resolve(graph, history_of(("Q1", True))).question_id == "Q3"


def test_later_answers_override_earlier_visibility():
    questions = [q("Q1", 1), q("Q2", 2), q("Q3", 3), q("Q4", 4)]
    rules = [
        rule("hide", "Q1", "hide_question", "Q4", value="hide"),
        rule("show", "Q2", "show_question", "Q4", value="show"),
    ]
    graph = FlowGraph.build(questions, rules)
    history = history_of(("Q1", "hide"), ("Q2", "show"), ("Q3", "x"))
    assert resolver.resolve(graph, history).question_id == "Q4"


def test_adjacent_skip_to_is_reported_as_a_jump():
    graph = three_questions([rule("r1", "Q1", "skip_to", "Q2")])

    state = resolver.resolve(graph, history_of(("Q1", True)))

    assert state.question_id == "Q2"
    assert state.skipped == ()
    assert state.jumped is True
    assert state.to_dict()["rule_id"] == "r1"

    plain = resolver.resolve(graph, history_of(("Q1", False)))
    assert plain.question_id == "Q2"
    assert plain.jumped is False


def test_visible_questions_and_progress():
    graph = three_questions([rule("r1", "Q1", "hide_question", "Q3")])
    history = history_of(("Q1", True))
    assert resolver.visible_questions(graph, history) == ["Q2"]

    progress = resolver.progress(graph, history)
    assert progress["answered"] == 1
    assert progress["remaining"] == 1
    assert progress["percent"] == 50
    assert progress["current_question_id"] == "Q2"


def test_progress_ignores_questions_jumped_over():
    questions = [q("Q1", 1, QuestionType.BOOLEAN), q("Q2", 2), q("Q3", 3), q("Q4", 4)]
    graph = FlowGraph.build(questions, [rule("r1", "Q1", "skip_to", "Q3")], survey_id="s1")

    progress = resolver.progress(graph, history_of(("Q1", True)))

    assert progress["current_question_id"] == "Q3"
    assert progress["answered"] == 1
    assert progress["remaining"] == 2
    assert progress["percent"] == 33

    three = three_questions([rule("r1", "Q1", "skip_to", "Q3")])
    progress = resolver.progress(three, history_of(("Q1", True)))
    assert progress["remaining"] == 1
    assert progress["percent"] == 50


# ═══════════════════════════════════════════════════════════════
# DEGRADED RULES
# ═══════════════════════════════════════════════════════════════

def test_dangling_skip_target_falls_back_to_next_question():
    graph = FlowGraph.build(
        [q("Q1", 1), q("Q2", 2)],
        [rule("r1", "Q1", "skip_to", "missing", value="x")],
        strict=False,
    )
    assert resolver.resolve(graph, history_of(("Q1", "x"))).question_id == "Q2"


def test_unknown_operator_never_fires():
    graph = three_questions([rule("r1", "Q1", "end_survey", operator="approx")])
    assert resolver.resolve(graph, history_of(("Q1", True))).question_id == "Q2"


def test_answers_after_termination_are_ignored():
    graph = three_questions([rule("end", "Q1", "end_survey")])
    state = resolver.resolve(graph, history_of(("Q1", True), ("Q2", "late")))
    assert state.status == FlowStatus.TERMINATED


def test_answers_for_unknown_questions_are_ignored():
    graph = three_questions()
    assert resolver.resolve(graph, history_of(("ghost", 1), ("Q1", True))).question_id == "Q2"


# ═══════════════════════════════════════════════════════════════
# TERMINATION BOUND
# ═══════════════════════════════════════════════════════════════

def test_walk_terminates_within_question_plus_insertion_count():
    questions = [q(f"Q{i}", i) for i in range(1, 9)]
    rules = [
        rule("a", "Q1", "skip_to", "Q4", value="go"),
        rule("b", "Q4", "hide_question", "Q6", value="go"),
        rule("c", "Q5", "show_question", "Q8", value="go"),
    ]
    graph = FlowGraph.build(questions, rules)
    follow_up = Question(
        id="Q4__ai1", type=QuestionType.TEXT, text="More?",
        provenance=Provenance.AI_GENERATED, confidence=0.9,
    )
    graph = graph.with_inserted("Q4", [follow_up])
    bound = len(graph) + len(graph.insertions)

    history = AnswerHistory()
    state = resolver.start(graph)
    steps = 0
    while not state.is_finished:
        history.append(state.question_id, "go")
        state = resolver.resolve(graph, history)
        steps += 1
        assert steps <= bound

    assert state.status == FlowStatus.COMPLETED
    assert "Q2" not in history and "Q6" not in history
    assert "Q4__ai1" in history and "Q8" in history
