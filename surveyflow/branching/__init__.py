"""
Conditional-logic flow control for surveys.

This module provides:
- Rule evaluation against answers
- Immutable, validated question graphs
- Deterministic next-question resolution
- Session-progress events
"""

from .rules import RuleEvaluator, RuleOutcome, values_equal
from .graph import FlowGraph, GraphInsertion
from .resolver import FlowResolver, FlowState, FlowStatus
from .events import EventBus, FlowEvent, FlowEventType

__all__ = [
    "RuleEvaluator",
    "RuleOutcome",
    "values_equal",
    "FlowGraph",
    "GraphInsertion",
    "FlowResolver",
    "FlowState",
    "FlowStatus",
    "EventBus",
    "FlowEvent",
    "FlowEventType",
]
