"""
Survey Definition Schema

The authored side of a survey: questions, conditional-logic rules and the AI
configuration that governs generation, validation and adaptive questioning.
A SurveyDefinition is the document a storage collaborator hands us; the flow
engine turns it into an immutable FlowGraph at publish time.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from ..errors import RuleConfigurationError


class QuestionType(str, Enum):
    """Closed set of question types."""
    TEXT = "text"
    MULTIPLE_CHOICE = "multiple_choice"
    RATING = "rating"
    NUMBER = "number"
    DATE = "date"
    BOOLEAN = "boolean"
    DROPDOWN = "dropdown"
    MATRIX = "matrix"


# Types whose answers must come from the option list
CHOICE_TYPES = frozenset({QuestionType.MULTIPLE_CHOICE, QuestionType.DROPDOWN})


class Provenance(str, Enum):
    """Who produced a question."""
    AUTHORED = "authored"
    AI_GENERATED = "ai_generated"


class Operator(str, Enum):
    """Condition operators."""
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    CONTAINS = "contains"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    IN = "in"
    NOT_IN = "not_in"


class ActionType(str, Enum):
    """What a rule does when its condition holds."""
    SHOW_QUESTION = "show_question"
    HIDE_QUESTION = "hide_question"
    SKIP_TO = "skip_to"
    END_SURVEY = "end_survey"


# Actions that need a target question
TARGETED_ACTIONS = frozenset({
    ActionType.SHOW_QUESTION,
    ActionType.HIDE_QUESTION,
    ActionType.SKIP_TO,
})


@dataclass(frozen=True)
class Question:
    """A single survey question."""
    id: str
    type: QuestionType
    text: str
    order: int = 0
    required: bool = False
    description: str = ""
    options: tuple[str, ...] = ()
    validation: dict[str, Any] = field(default_factory=dict)
    provenance: Provenance = Provenance.AUTHORED
    confidence: Optional[float] = None   # Only for AI-generated questions
    metadata: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if not self.id:
            raise ValueError("Question id must not be empty")
        if self.provenance == Provenance.AUTHORED and self.confidence is not None:
            raise ValueError(f"Authored question '{self.id}' cannot carry a confidence score")
        if self.confidence is not None and not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"Confidence for '{self.id}' must be within [0, 1], got {self.confidence}")

    @property
    def is_ai_generated(self) -> bool:
        return self.provenance == Provenance.AI_GENERATED

    @property
    def is_choice(self) -> bool:
        return self.type in CHOICE_TYPES

    def with_order(self, order: int) -> "Question":
        """Copy of this question at a new ordinal position."""
        return dataclasses.replace(self, order=order)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        data = {
            "id": self.id,
            "type": self.type.value,
            "text": self.text,
            "order": self.order,
            "required": self.required,
            "description": self.description,
            "options": list(self.options),
            "validation": dict(self.validation),
            "provenance": self.provenance.value,
            "metadata": dict(self.metadata),
        }
        if self.confidence is not None:
            data["confidence"] = self.confidence
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Question":
        """Create from dictionary. Accepts the `aiGenerated` flag of stored documents."""
        provenance = data.get("provenance")
        if provenance is None:
            ai_generated = data.get("aiGenerated", data.get("ai_generated", False))
            provenance = Provenance.AI_GENERATED if ai_generated else Provenance.AUTHORED
        provenance = Provenance(provenance)

        confidence = data.get("confidence")
        if provenance == Provenance.AUTHORED:
            confidence = None
        elif confidence is not None:
            confidence = float(confidence)

        return cls(
            id=str(data.get("id") or data.get("_id") or ""),
            type=QuestionType(data.get("type", "text")),
            text=data.get("text", ""),
            order=int(data.get("order", 0)),
            required=bool(data.get("required", False)),
            description=data.get("description", "") or "",
            options=tuple(str(o) for o in data.get("options", []) or []),
            validation=dict(data.get("validation", {}) or {}),
            provenance=provenance,
            confidence=confidence,
            metadata=dict(data.get("metadata", {}) or {}),
        )


@dataclass(frozen=True)
class Condition:
    """
    Condition half of a rule.

    The operator is kept as the raw string from the document so that a
    malformed operator survives parsing and is handled (as "never matches")
    by the rule evaluator instead of failing the whole survey.
    """
    operator: str
    value: Any = None
    values: Optional[tuple] = None

    @property
    def known_operator(self) -> Optional[Operator]:
        try:
            return Operator(self.operator)
        except ValueError:
            return None

    def to_dict(self) -> dict:
        data = {"operator": self.operator, "value": self.value}
        if self.values is not None:
            data["values"] = list(self.values)
        return data


@dataclass(frozen=True)
class RuleAction:
    """Action half of a rule."""
    type: ActionType
    target_question_id: Optional[str] = None

    def to_dict(self) -> dict:
        return {"type": self.type.value, "target_question_id": self.target_question_id}


@dataclass(frozen=True)
class ConditionalRule:
    """If the answer to `source_question_id` satisfies `condition`, apply `action`."""
    source_question_id: str
    condition: Condition
    action: RuleAction
    rule_id: str = ""

    @property
    def target_question_id(self) -> Optional[str]:
        return self.action.target_question_id

    def references(self, question_id: str) -> bool:
        return question_id in (self.source_question_id, self.action.target_question_id)

    def describe(self) -> str:
        target = f" {self.target_question_id}" if self.target_question_id else ""
        return (
            f"{self.rule_id or 'rule'}: if {self.source_question_id} "
            f"{self.condition.operator} {self.condition.values or self.condition.value!r} "
            f"then {self.action.type.value}{target}"
        )

    def to_dict(self) -> dict:
        return {
            "rule_id": self.rule_id,
            "source_question_id": self.source_question_id,
            "condition": self.condition.to_dict(),
            "action": self.action.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict, default_id: str = "") -> "ConditionalRule":
        """
        Create from dictionary.

        Accepts both the stored document shape (`questionId`, `action.type`,
        `action.targetQuestionId`) and snake_case keys.

        Raises:
            RuleConfigurationError: if the action type is unknown or a
                targeted action has no target
        """
        rule_id = str(data.get("rule_id") or data.get("id") or default_id)
        source = data.get("source_question_id") or data.get("questionId") or ""
        cond = data.get("condition", {}) or {}
        act = data.get("action", {}) or {}

        values = cond.get("values")
        condition = Condition(
            operator=str(cond.get("operator", "")),
            value=cond.get("value"),
            values=tuple(values) if isinstance(values, (list, tuple)) and values else None,
        )

        try:
            action_type = ActionType(act.get("type"))
        except ValueError:
            raise RuleConfigurationError(
                f"Rule '{rule_id}' has unknown action type {act.get('type')!r}",
                rule_id=rule_id,
                question_id=str(source),
            )

        target = act.get("target_question_id") or act.get("targetQuestionId")
        if action_type in TARGETED_ACTIONS and not target:
            raise RuleConfigurationError(
                f"Rule '{rule_id}' action {action_type.value} requires a target question",
                rule_id=rule_id,
                question_id=str(source),
            )

        return cls(
            source_question_id=str(source),
            condition=condition,
            action=RuleAction(type=action_type, target_question_id=str(target) if target else None),
            rule_id=rule_id,
        )


@dataclass
class QuestionGenerationConfig:
    enabled: bool = True
    confidence_threshold: float = 0.8


@dataclass
class ResponseValidationConfig:
    enabled: bool = True
    quality_threshold: float = 0.7


@dataclass
class AdaptiveConfig:
    """Adaptive questioning settings for one survey."""
    enabled: bool = False
    max_adaptive_questions: int = 3
    context_window: int = 3      # How many prior answers feed the follow-up prompt

    def __post_init__(self):
        if not 0 <= self.max_adaptive_questions <= 10:
            raise ValueError("max_adaptive_questions must be between 0 and 10")
        if self.context_window < 1:
            raise ValueError("context_window must be at least 1")


@dataclass
class AIConfiguration:
    """Per-survey AI switches, mirroring the stored `aiConfiguration` block."""
    question_generation: QuestionGenerationConfig = field(default_factory=QuestionGenerationConfig)
    response_validation: ResponseValidationConfig = field(default_factory=ResponseValidationConfig)
    adaptive_questioning: AdaptiveConfig = field(default_factory=AdaptiveConfig)

    def to_dict(self) -> dict:
        return {
            "question_generation": dataclasses.asdict(self.question_generation),
            "response_validation": dataclasses.asdict(self.response_validation),
            "adaptive_questioning": dataclasses.asdict(self.adaptive_questioning),
        }

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "AIConfiguration":
        data = data or {}
        gen = data.get("question_generation", data.get("questionGeneration", {})) or {}
        val = data.get("response_validation", data.get("responseValidation", {})) or {}
        ada = data.get("adaptive_questioning", data.get("adaptiveQuestioning", {})) or {}
        return cls(
            question_generation=QuestionGenerationConfig(
                enabled=bool(gen.get("enabled", True)),
                confidence_threshold=float(gen.get("confidence_threshold", 0.8)),
            ),
            response_validation=ResponseValidationConfig(
                enabled=bool(val.get("enabled", True)),
                quality_threshold=float(val.get("quality_threshold", 0.7)),
            ),
            adaptive_questioning=AdaptiveConfig(
                enabled=bool(ada.get("enabled", False)),
                max_adaptive_questions=int(ada.get("max_adaptive_questions", 3)),
                context_window=int(ada.get("context_window", 3)),
            ),
        )


@dataclass
class SurveyDefinition:
    """
    Complete authored survey.

    Structural edits (adding, deleting or reordering questions, adding rules)
    bump `version`, a monotonic integer counter. A FlowGraph built from one
    version is never affected by later edits.
    """
    survey_id: str
    title: str
    questions: list[Question] = field(default_factory=list)
    rules: list[ConditionalRule] = field(default_factory=list)
    description: str = ""
    category: str = "other"
    target_audience: str = "general_public"
    language: str = "en"
    version: int = 1
    ai_enabled: bool = True
    ai_config: AIConfiguration = field(default_factory=AIConfiguration)

    @property
    def adaptive_enabled(self) -> bool:
        return self.ai_enabled and self.ai_config.adaptive_questioning.enabled

    @property
    def validation_enabled(self) -> bool:
        return self.ai_enabled and self.ai_config.response_validation.enabled

    def get_question(self, question_id: str) -> Optional[Question]:
        for q in self.questions:
            if q.id == question_id:
                return q
        return None

    def _bump_version(self):
        self.version += 1

    def add_question(self, question: Question) -> Question:
        """Append a question at the end of the ordinal order."""
        if self.get_question(question.id) is not None:
            raise ValueError(f"Question '{question.id}' already exists in survey '{self.survey_id}'")
        last = max((q.order for q in self.questions), default=0)
        placed = question.with_order(last + 1)
        self.questions.append(placed)
        self._bump_version()
        return placed

    def delete_question(self, question_id: str) -> list[ConditionalRule]:
        """
        Remove a question and every rule that references it.

        Returns:
            The rules pruned together with the question
        """
        if self.get_question(question_id) is None:
            raise KeyError(question_id)
        pruned = [r for r in self.rules if r.references(question_id)]
        self.questions = [q for q in self.questions if q.id != question_id]
        self.rules = [r for r in self.rules if not r.references(question_id)]
        self._renumber()
        self._bump_version()
        return pruned

    def reorder(self, question_ids: list[str]):
        """Reassign ordinal positions to follow `question_ids`."""
        current = {q.id: q for q in self.questions}
        if sorted(question_ids) != sorted(current):
            raise ValueError("Reorder must list every question exactly once")
        self.questions = [current[qid].with_order(i + 1) for i, qid in enumerate(question_ids)]
        self._bump_version()

    def add_rule(self, rule: ConditionalRule) -> ConditionalRule:
        """Attach a rule. Both ends must already exist in this survey."""
        for qid in (rule.source_question_id, rule.target_question_id):
            if qid is not None and self.get_question(qid) is None:
                raise RuleConfigurationError(
                    f"Rule '{rule.rule_id}' references unknown question '{qid}'",
                    rule_id=rule.rule_id,
                    question_id=qid,
                )
        if not rule.rule_id:
            rule = dataclasses.replace(rule, rule_id=f"rule_{len(self.rules) + 1}")
        self.rules.append(rule)
        self._bump_version()
        return rule

    def _renumber(self):
        ordered = sorted(self.questions, key=lambda q: q.order)
        self.questions = [q.with_order(i + 1) for i, q in enumerate(ordered)]

    def build_flow_graph(self, strict: bool = True):
        """Build the immutable FlowGraph for the current version."""
        from ..branching.graph import FlowGraph

        return FlowGraph.build(
            self.questions,
            self.rules,
            survey_id=self.survey_id,
            version=self.version,
            strict=strict,
        )

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "survey_id": self.survey_id,
            "title": self.title,
            "description": self.description,
            "category": self.category,
            "target_audience": self.target_audience,
            "language": self.language,
            "version": self.version,
            "ai_enabled": self.ai_enabled,
            "ai_config": self.ai_config.to_dict(),
            "questions": [q.to_dict() for q in self.questions],
            "rules": [r.to_dict() for r in self.rules],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SurveyDefinition":
        """Create from dictionary (snake_case or stored camelCase document)."""
        raw_version = data.get("version", 1)
        try:
            version = int(raw_version)
        except (TypeError, ValueError):
            # Legacy documents carry "1.0.0"-style strings
            version = int(str(raw_version).split(".")[0] or 1)

        questions = [Question.from_dict(q) for q in data.get("questions", [])]
        raw_rules = data.get("rules", data.get("conditionalLogic", [])) or []
        rules = [
            ConditionalRule.from_dict(r, default_id=f"rule_{i + 1}")
            for i, r in enumerate(raw_rules)
        ]

        return cls(
            survey_id=str(data.get("survey_id") or data.get("id") or data.get("_id") or ""),
            title=data.get("title", ""),
            description=data.get("description", "") or "",
            category=data.get("category", "other"),
            target_audience=data.get("target_audience", data.get("targetAudience", "general_public")),
            language=data.get("language", data.get("defaultLanguage", "en")),
            version=version,
            ai_enabled=bool(data.get("ai_enabled", data.get("aiEnabled", True))),
            ai_config=AIConfiguration.from_dict(data.get("ai_config", data.get("aiConfiguration"))),
            questions=questions,
            rules=rules,
        )
