"""
Answer history for a respondent session, plus the local answer checks that
run before an answer is accepted.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime, date
from typing import Any, Iterator, Optional

from .survey import Question, QuestionType


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AnswerEntry:
    """One recorded answer."""
    question_id: str
    value: Any
    timestamp: datetime

    def to_dict(self) -> dict:
        return {
            "question_id": self.question_id,
            "value": self.value,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AnswerEntry":
        ts = data.get("timestamp")
        return cls(
            question_id=data["question_id"],
            value=data.get("value"),
            timestamp=datetime.fromisoformat(ts) if ts else datetime.now(),
        )


class AnswerHistory:
    """
    Ordered, append-only sequence of answers for one session.

    Entries are never mutated or removed. A question can be answered at most
    once; questions bypassed by a skip_to rule simply never appear.
    """

    def __init__(self, entries: Optional[list[AnswerEntry]] = None):
        self._entries: list[AnswerEntry] = []
        self._by_question: dict[str, AnswerEntry] = {}
        for entry in entries or []:
            self._add(entry)

    def _add(self, entry: AnswerEntry):
        if entry.question_id in self._by_question:
            raise ValueError(f"Question '{entry.question_id}' has already been answered")
        self._entries.append(entry)
        self._by_question[entry.question_id] = entry

    def append(self, question_id: str, value: Any, timestamp: Optional[datetime] = None) -> AnswerEntry:
        """Record an answer and return the new entry."""
        entry = AnswerEntry(question_id=question_id, value=value, timestamp=timestamp or datetime.now())
        self._add(entry)
        return entry

    @property
    def entries(self) -> tuple[AnswerEntry, ...]:
        return tuple(self._entries)

    @property
    def answered_ids(self) -> frozenset[str]:
        return frozenset(self._by_question)

    def get(self, question_id: str) -> Optional[AnswerEntry]:
        return self._by_question.get(question_id)

    def has_answer(self, question_id: str) -> bool:
        return question_id in self._by_question

    def last(self) -> Optional[AnswerEntry]:
        return self._entries[-1] if self._entries else None

    def recent(self, n: int) -> tuple[AnswerEntry, ...]:
        """The last `n` entries, oldest first."""
        if n <= 0:
            return ()
        return tuple(self._entries[-n:])

    def copy(self) -> "AnswerHistory":
        return AnswerHistory(list(self._entries))

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[AnswerEntry]:
        return iter(tuple(self._entries))

    def __contains__(self, question_id: object) -> bool:
        return question_id in self._by_question

    def to_list(self) -> list[dict]:
        return [e.to_dict() for e in self._entries]

    @classmethod
    def from_list(cls, data: list[dict]) -> "AnswerHistory":
        return cls([AnswerEntry.from_dict(d) for d in data])


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str) and not value.strip():
        return True
    if isinstance(value, (list, tuple, dict)) and not value:
        return True
    return False


def _as_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return None
    return None


def check_answer(question: Question, value: Any) -> list[str]:
    """
    Run the deterministic checks an answer must pass before it is recorded.

    Uses the question's type, option list and `validation` rules
    (`min`, `max`, `min_length`, `max_length`, `pattern`).

    Returns:
        List of problems; empty if the answer is acceptable
    """
    issues = []
    rules = question.validation or {}

    if _is_blank(value):
        if question.required:
            issues.append("An answer is required")
        return issues

    qtype = question.type

    if question.is_choice and question.options:
        picked = value if isinstance(value, (list, tuple)) else [value]
        unknown = [str(v) for v in picked if str(v) not in question.options]
        if unknown:
            issues.append(f"Not a valid option: {', '.join(unknown)}")
        if qtype == QuestionType.DROPDOWN and isinstance(value, (list, tuple)) and len(value) > 1:
            issues.append("Dropdown questions accept a single option")

    elif qtype in (QuestionType.NUMBER, QuestionType.RATING):
        number = _as_number(value)
        if number is None:
            issues.append("Answer must be a number")
        else:
            low = rules.get("min", 1 if qtype == QuestionType.RATING else None)
            high = rules.get("max", 5 if qtype == QuestionType.RATING else None)
            if low is not None and number < float(low):
                issues.append(f"Answer must be at least {low}")
            if high is not None and number > float(high):
                issues.append(f"Answer must be at most {high}")

    elif qtype == QuestionType.BOOLEAN:
        if not isinstance(value, bool) and str(value).strip().lower() not in (
            "true", "false", "yes", "no", "1", "0"
        ):
            issues.append("Answer must be yes or no")

    elif qtype == QuestionType.DATE:
        if not isinstance(value, (date, datetime)):
            try:
                date.fromisoformat(str(value))
            except ValueError:
                issues.append("Answer must be a date (YYYY-MM-DD)")

    elif qtype == QuestionType.MATRIX:
        if not isinstance(value, dict):
            issues.append("Matrix answers must map rows to columns")

    if isinstance(value, str):
        min_length = rules.get("min_length")
        max_length = rules.get("max_length")
        if min_length is not None and len(value) < int(min_length):
            issues.append(f"Answer must be at least {min_length} characters")
        if max_length is not None and len(value) > int(max_length):
            issues.append(f"Answer must be at most {max_length} characters")
        pattern = rules.get("pattern")
        if pattern:
            try:
                if not re.fullmatch(pattern, value):
                    issues.append(rules.get("pattern_message", "Answer has an invalid format"))
            except re.error:
                logger.warning("Ignoring invalid pattern %r on question %s", pattern, question.id)

    return issues
