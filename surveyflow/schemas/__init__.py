"""
Schemas for surveys, conditional rules and respondent answers.
"""

from .survey import (
    QuestionType,
    Provenance,
    Operator,
    ActionType,
    Question,
    Condition,
    RuleAction,
    ConditionalRule,
    AdaptiveConfig,
    AIConfiguration,
    SurveyDefinition,
)
from .answers import AnswerEntry, AnswerHistory, check_answer

__all__ = [
    "QuestionType",
    "Provenance",
    "Operator",
    "ActionType",
    "Question",
    "Condition",
    "RuleAction",
    "ConditionalRule",
    "AdaptiveConfig",
    "AIConfiguration",
    "SurveyDefinition",
    "AnswerEntry",
    "AnswerHistory",
    "check_answer",
]
