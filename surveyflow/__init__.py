"""
surveyflow - conditional survey flow engine with AI augmentation.

Surveys are published as immutable FlowGraphs; respondent sessions replay
their answers through the conditional rules to find the next question.
Adaptive follow-ups and answer validation go through a timeout-bounded AI
gateway and a coalescing response cache, and degrade silently on failure.
"""

__version__ = "0.1.0"

from .errors import (
    SurveyFlowError,
    RuleConfigurationError,
    CycleDetectedError,
    UpstreamError,
    CacheMiss,
    AnswerRejected,
)
from .schemas import (
    QuestionType,
    Provenance,
    Question,
    Condition,
    RuleAction,
    ConditionalRule,
    SurveyDefinition,
    AnswerHistory,
)
from .branching import FlowGraph, FlowResolver, FlowState, FlowStatus, RuleEvaluator, EventBus
from .config import Settings, configure_logging
from .session import SurveyServices, SurveySession, SubmissionResult

__all__ = [
    "__version__",
    "SurveyFlowError",
    "RuleConfigurationError",
    "CycleDetectedError",
    "UpstreamError",
    "CacheMiss",
    "AnswerRejected",
    "QuestionType",
    "Provenance",
    "Question",
    "Condition",
    "RuleAction",
    "ConditionalRule",
    "SurveyDefinition",
    "AnswerHistory",
    "FlowGraph",
    "FlowResolver",
    "FlowState",
    "FlowStatus",
    "RuleEvaluator",
    "EventBus",
    "Settings",
    "configure_logging",
    "SurveyServices",
    "SurveySession",
    "SubmissionResult",
]
