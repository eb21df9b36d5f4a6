"""
Tests for the advisory validation policy.
"""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from surveyflow.ai.cache import ResponseCache
from surveyflow.ai.gateway import QualityVerdict
from surveyflow.ai.validation import DEFAULT_VERDICT, ValidationFallbackPolicy
from surveyflow.errors import UpstreamError
from surveyflow.schemas.survey import Question, QuestionType


QUESTION = Question(id="q1", type=QuestionType.TEXT, text="Describe your commute")


class FailingGateway:

    def __init__(self, error):
        self.error = error
        self.calls = 0

    def validate_response(self, answer, question, metadata=None):
        self.calls += 1
        raise self.error


class GoodGateway:

    def __init__(self):
        self.calls = 0

    def validate_response(self, answer, question, metadata=None):
        self.calls += 1
        return QualityVerdict(is_valid=True, confidence=0.9, issues=(), quality_score=8)


def test_default_verdict_values():
    assert DEFAULT_VERDICT.is_valid is True
    assert DEFAULT_VERDICT.confidence == 0.5
    assert DEFAULT_VERDICT.issues == ("validation unavailable",)
    assert DEFAULT_VERDICT.quality_score == 5


def test_always_failing_gateway_always_yields_default():
    errors = [
        UpstreamError("timed out"),
        UpstreamError("schema violation"),
        RuntimeError("unexpected"),
    ]
    for error in errors:
        policy = ValidationFallbackPolicy(FailingGateway(error), ResponseCache())
        for answer in ("", "bus", 42, None, ["a"]):
            assert policy.assess(answer, QUESTION) == DEFAULT_VERDICT


def test_failures_are_retried_not_cached():
    gateway = FailingGateway(UpstreamError("down"))
    policy = ValidationFallbackPolicy(gateway, ResponseCache())
    policy.assess("bus", QUESTION)
    policy.assess("bus", QUESTION)
    assert gateway.calls == 2


def test_successful_verdicts_are_cached():
    gateway = GoodGateway()
    policy = ValidationFallbackPolicy(gateway, ResponseCache())

    first = policy.assess("bus", QUESTION, {"region": "north"})
    second = policy.assess("bus", QUESTION, {"region": "north"})

    assert first == second
    assert first.quality_score == 8
    assert gateway.calls == 1


def test_no_gateway_means_default():
    assert ValidationFallbackPolicy(None).assess("x", QUESTION) == DEFAULT_VERDICT
