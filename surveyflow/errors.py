"""
Error taxonomy for the survey flow engine.

Only FlowGraph construction errors are meant to reach callers as hard
failures. Everything raised while a respondent is moving through a survey is
absorbed by the component that raised it and turned into degraded behaviour.
"""

from typing import Optional, List


class SurveyFlowError(Exception):
    """Base class for all surveyflow errors."""


class RuleConfigurationError(SurveyFlowError):
    """A conditional rule is malformed or references an unknown question."""

    def __init__(self, message: str, rule_id: str = "", question_id: str = ""):
        super().__init__(message)
        self.rule_id = rule_id
        self.question_id = question_id


class CycleDetectedError(SurveyFlowError):
    """The skip_to edges of a survey form a cycle."""

    def __init__(self, cycle: List[str]):
        self.cycle = list(cycle)
        super().__init__("skip_to cycle detected: " + " -> ".join(self.cycle))


class UpstreamError(SurveyFlowError):
    """An AI call failed, timed out, or returned a payload that failed validation."""

    def __init__(self, message: str, operation: str = "", cause: Optional[BaseException] = None):
        super().__init__(message)
        self.operation = operation
        self.cause = cause


class CacheMiss(KeyError):
    """No live cache entry for a key. Not an error, a normal control path."""


class AnswerRejected(SurveyFlowError, ValueError):
    """A submitted answer failed the local, deterministic answer checks."""

    def __init__(self, question_id: str, issues: List[str]):
        self.question_id = question_id
        self.issues = list(issues)
        super().__init__(f"Answer for '{question_id}' rejected: {'; '.join(self.issues)}")
