"""
Rule evaluation for conditional survey logic.

Evaluates a single rule condition against an answer value. Evaluation is pure
and never raises: an unknown operator, a type mismatch or a missing value-set
simply means the condition does not hold. The caller decides whether the
problem is worth a warning.
"""

import math
from dataclasses import dataclass
from typing import Any, Optional

from ..schemas.survey import Condition, Operator


_TRUE_WORDS = {"true", "yes", "y", "1"}
_FALSE_WORDS = {"false", "no", "n", "0"}


@dataclass(frozen=True)
class RuleOutcome:
    """Result of evaluating one condition."""
    matched: bool
    problem: Optional[str] = None    # Set when the condition could not be evaluated


def _as_number(value: Any) -> Optional[float]:
    """Numeric view of a value, or None. Booleans are not numbers here."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def _as_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        word = value.strip().lower()
        if word in _TRUE_WORDS:
            return True
        if word in _FALSE_WORDS:
            return False
    return None


def values_equal(left: Any, right: Any) -> bool:
    """Equality after type normalization."""
    if isinstance(left, bool) or isinstance(right, bool):
        lb, rb = _as_bool(left), _as_bool(right)
        return lb is not None and rb is not None and lb == rb

    ln, rn = _as_number(left), _as_number(right)
    if ln is not None and rn is not None:
        return ln == rn

    return left == right


def _is_sequence(value: Any) -> bool:
    return isinstance(value, (list, tuple, set, frozenset))


class RuleEvaluator:
    """
    Evaluates `Condition`s against answers.

    Operators:
    - equals / not_equals: normalized comparison
    - contains: substring of a text answer, or element of a list answer
    - greater_than / less_than: numeric only
    - in / not_in: membership against the condition's value-set
    """

    def evaluate(self, condition: Condition, answer: Any) -> bool:
        """Return True if `answer` satisfies `condition`."""
        return self.explain(condition, answer).matched

    def explain(self, condition: Condition, answer: Any) -> RuleOutcome:
        """Evaluate and report why a condition could not be evaluated, if it couldn't."""
        operator = condition.known_operator
        if operator is None:
            return RuleOutcome(False, f"unknown operator {condition.operator!r}")

        # Nothing fires on a missing answer
        if answer is None:
            return RuleOutcome(False)

        try:
            handler = self._HANDLERS[operator]
            return handler(self, condition, answer)
        except Exception as e:  # noqa: BLE001
            return RuleOutcome(False, f"{operator.value} failed: {e}")

    def _equals(self, condition: Condition, answer: Any) -> RuleOutcome:
        return RuleOutcome(values_equal(answer, condition.value))

    def _not_equals(self, condition: Condition, answer: Any) -> RuleOutcome:
        return RuleOutcome(not values_equal(answer, condition.value))

    def _contains(self, condition: Condition, answer: Any) -> RuleOutcome:
        operand = condition.value
        if operand is None:
            return RuleOutcome(False, "contains needs an operand value")
        if isinstance(answer, str):
            return RuleOutcome(str(operand) in answer)
        if _is_sequence(answer):
            return RuleOutcome(any(values_equal(item, operand) for item in answer))
        return RuleOutcome(False, f"contains needs a text or list answer, got {type(answer).__name__}")

    def _compare(self, condition: Condition, answer: Any, greater: bool) -> RuleOutcome:
        left, right = _as_number(answer), _as_number(condition.value)
        if left is None or right is None:
            return RuleOutcome(
                False,
                f"{condition.operator} needs numeric values, got {answer!r} and {condition.value!r}",
            )
        return RuleOutcome(left > right if greater else left < right)

    def _greater_than(self, condition: Condition, answer: Any) -> RuleOutcome:
        return self._compare(condition, answer, greater=True)

    def _less_than(self, condition: Condition, answer: Any) -> RuleOutcome:
        return self._compare(condition, answer, greater=False)

    def _value_set(self, condition: Condition) -> Optional[tuple]:
        if condition.values:
            return tuple(condition.values)
        if _is_sequence(condition.value):
            return tuple(condition.value)
        return None

    def _membership(self, condition: Condition, answer: Any, negate: bool) -> RuleOutcome:
        value_set = self._value_set(condition)
        if value_set is None:
            return RuleOutcome(False, f"{condition.operator} needs a value-set")

        picked = answer if _is_sequence(answer) else (answer,)
        hit = any(values_equal(item, v) for item in picked for v in value_set)
        return RuleOutcome(not hit if negate else hit)

    def _in(self, condition: Condition, answer: Any) -> RuleOutcome:
        return self._membership(condition, answer, negate=False)

    def _not_in(self, condition: Condition, answer: Any) -> RuleOutcome:
        return self._membership(condition, answer, negate=True)

    _HANDLERS = {
        Operator.EQUALS: _equals,
        Operator.NOT_EQUALS: _not_equals,
        Operator.CONTAINS: _contains,
        Operator.GREATER_THAN: _greater_than,
        Operator.LESS_THAN: _less_than,
        Operator.IN: _in,
        Operator.NOT_IN: _not_in,
    }
