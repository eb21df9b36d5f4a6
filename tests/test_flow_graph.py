"""
Tests for FlowGraph construction and adaptive edits.
"""

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from surveyflow.branching.graph import FlowGraph
from surveyflow.errors import CycleDetectedError, RuleConfigurationError
from surveyflow.schemas.survey import (
    ActionType,
    Condition,
    ConditionalRule,
    Provenance,
    Question,
    QuestionType,
    RuleAction,
)


def q(qid, order, qtype=QuestionType.TEXT):
    return Question(id=qid, type=qtype, text=f"Question {qid}", order=order)


def rule(rule_id, source, action, target=None, operator="equals", value=True):
    return ConditionalRule(
        source_question_id=source,
        condition=Condition(operator=operator, value=value),
        action=RuleAction(type=ActionType(action), target_question_id=target),
        rule_id=rule_id,
    )


def test_orders_by_position_then_input_order():
    graph = FlowGraph.build([q("c", 2), q("a", 1), q("b", 2)], [])
    assert graph.question_ids == ("a", "c", "b")
    assert graph.first().id == "a"


def test_duplicate_ids_rejected():
    with pytest.raises(RuleConfigurationError):
        FlowGraph.build([q("a", 1), q("a", 2)], [])


def test_dangling_target_rejected_when_strict():
    with pytest.raises(RuleConfigurationError) as exc:
        FlowGraph.build([q("q1", 1), q("q2", 2)], [rule("r1", "q1", "skip_to", "q9")])
    assert exc.value.question_id == "q9"


def test_dangling_target_kept_when_not_strict():
    graph = FlowGraph.build([q("q1", 1), q("q2", 2)], [rule("r1", "q1", "skip_to", "q9")], strict=False)
    assert len(graph.issues) == 1
    assert graph.rules_for("q1")[0].rule_id == "r1"


def test_unknown_operator_does_not_block_build():
    graph = FlowGraph.build([q("q1", 1), q("q2", 2)], [rule("r1", "q1", "end_survey", operator="approx")])
    assert graph.issues == ()


def test_backward_skip_is_a_cycle():
    questions = [q("q1", 1), q("q2", 2), q("q3", 3)]
    with pytest.raises(CycleDetectedError) as exc:
        FlowGraph.build(questions, [rule("r1", "q3", "skip_to", "q1")])
    assert exc.value.cycle[0] == exc.value.cycle[-1]
    assert "q1" in exc.value.cycle and "q3" in exc.value.cycle


def test_self_skip_is_a_cycle():
    with pytest.raises(CycleDetectedError):
        FlowGraph.build([q("q1", 1), q("q2", 2)], [rule("r1", "q1", "skip_to", "q1")])


def test_forward_skips_are_fine():
    questions = [q(f"q{i}", i) for i in range(1, 6)]
    rules = [rule("r1", "q1", "skip_to", "q4"), rule("r2", "q2", "skip_to", "q5")]
    graph = FlowGraph.build(questions, rules, survey_id="s1", version=3)
    assert graph.version == 3
    assert graph.revision == 0
    assert [r.rule_id for r in graph.rules_for("q1")] == ["r1"]


def test_show_targets():
    questions = [q("q1", 1), q("q2", 2), q("q3", 3)]
    rules = [rule("r1", "q1", "show_question", "q3"), rule("r2", "q1", "hide_question", "q2")]
    graph = FlowGraph.build(questions, rules)
    assert graph.show_targets() == frozenset({"q3"})


def test_questions_between():
    graph = FlowGraph.build([q(f"q{i}", i) for i in range(1, 5)], [])
    assert [x.id for x in graph.questions_between("q1", "q4")] == ["q2", "q3"]


class TestWithInserted:

    def setup_method(self):
        self.graph = FlowGraph.build([q("q1", 1), q("q2", 2), q("q3", 3)], [], survey_id="s1")
        self.follow_up = Question(
            id="q1__ai1",
            type=QuestionType.TEXT,
            text="Why?",
            provenance=Provenance.AI_GENERATED,
            confidence=0.9,
        )

    def test_inserts_after_anchor_and_renumbers(self):
        new = self.graph.with_inserted("q1", [self.follow_up])
        assert new.question_ids == ("q1", "q1__ai1", "q2", "q3")
        assert [x.order for x in new.questions] == [1, 2, 3, 4]
        assert new.revision == 1
        assert new.insertions[0].question_ids == ("q1__ai1",)

    def test_original_graph_untouched(self):
        self.graph.with_inserted("q1", [self.follow_up])
        assert self.graph.question_ids == ("q1", "q2", "q3")
        assert self.graph.revision == 0

    def test_unknown_anchor(self):
        with pytest.raises(KeyError):
            self.graph.with_inserted("q9", [self.follow_up])

    def test_id_clash(self):
        with pytest.raises(ValueError):
            self.graph.with_inserted("q1", [q("q2", 0)])

    def test_nothing_to_insert_returns_same_graph(self):
        assert self.graph.with_inserted("q1", []) is self.graph
