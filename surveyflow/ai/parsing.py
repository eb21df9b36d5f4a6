"""
Schema validation for AI replies.

LLM output is untrusted input. Replies are decoded and checked field by field
into typed values here; anything that does not fit the expected shape raises
UpstreamError for the whole payload. No partially valid reply is returned.
"""

import json
import re
from typing import Any, Dict, List

from ..errors import UpstreamError
from ..schemas.survey import CHOICE_TYPES, QuestionType


_FENCE = re.compile(r"^```[a-zA-Z]*\s*|\s*```$")

DEFAULT_QUESTION_CONFIDENCE = 0.8


def decode_json(content: str, operation: str) -> Any:
    """Decode a JSON reply, tolerating a surrounding markdown code fence."""
    text = _FENCE.sub("", (content or "").strip())
    if not text:
        raise UpstreamError("AI reply was empty", operation=operation)
    try:
        return json.loads(text)
    except ValueError as e:
        raise UpstreamError(f"AI reply is not valid JSON: {e}", operation=operation, cause=e)


def _require(condition: bool, message: str, operation: str):
    if not condition:
        raise UpstreamError(f"AI reply failed validation: {message}", operation=operation)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def parse_generated_questions(content: str, operation: str = "generate_questions") -> List[Dict[str, Any]]:
    """
    Validate a question-generation reply.

    Accepts `{"questions": [...]}` or a bare list. Each item must have
    non-empty text, a known question type, options for choice types, and a
    confidence in [0, 1] when present.

    Returns:
        Clean dicts with keys type, text, description, required, options,
        validation, confidence

    Raises:
        UpstreamError: if anything in the payload is off
    """
    payload = decode_json(content, operation)
    items = payload.get("questions") if isinstance(payload, dict) else payload
    _require(isinstance(items, list), "expected a list of questions", operation)

    cleaned = []
    for i, item in enumerate(items):
        _require(isinstance(item, dict), f"question {i} is not an object", operation)

        text = item.get("text")
        _require(isinstance(text, str) and text.strip() != "", f"question {i} has no text", operation)

        raw_type = item.get("type", QuestionType.TEXT.value)
        try:
            qtype = QuestionType(raw_type)
        except ValueError:
            raise UpstreamError(
                f"AI reply failed validation: question {i} has unknown type {raw_type!r}",
                operation=operation,
            )

        options = item.get("options") or []
        _require(
            isinstance(options, list) and all(isinstance(o, (str, int, float)) for o in options),
            f"question {i} options must be a list of strings",
            operation,
        )
        if qtype in CHOICE_TYPES:
            _require(len(options) >= 2, f"question {i} ({qtype.value}) needs at least two options", operation)

        confidence = item.get("confidence", DEFAULT_QUESTION_CONFIDENCE)
        _require(
            _is_number(confidence) and 0.0 <= confidence <= 1.0,
            f"question {i} confidence must be a number in [0, 1]",
            operation,
        )

        validation = item.get("validation") or {}
        _require(isinstance(validation, dict), f"question {i} validation must be an object", operation)

        description = item.get("description") or ""
        _require(isinstance(description, str), f"question {i} description must be a string", operation)

        cleaned.append({
            "type": qtype,
            "text": text.strip(),
            "description": description,
            "required": bool(item.get("required", False)),
            "options": tuple(str(o) for o in options),
            "validation": dict(validation),
            "confidence": float(confidence),
        })

    return cleaned


def parse_validation_verdict(content: str, operation: str = "validate_response") -> Dict[str, Any]:
    """
    Validate a response-validation reply.

    Required: isValid (bool), confidence in [0, 1], issues (list of str),
    quality_score in [0, 10]. suggestions is optional. Both camelCase and
    snake_case keys are accepted.
    """
    payload = decode_json(content, operation)
    _require(isinstance(payload, dict), "expected a JSON object", operation)

    is_valid = payload.get("isValid", payload.get("is_valid"))
    _require(isinstance(is_valid, bool), "isValid must be a boolean", operation)

    confidence = payload.get("confidence")
    _require(_is_number(confidence) and 0.0 <= confidence <= 1.0, "confidence must be in [0, 1]", operation)

    issues = payload.get("issues")
    _require(
        isinstance(issues, list) and all(isinstance(i, str) for i in issues),
        "issues must be a list of strings",
        operation,
    )

    score = payload.get("quality_score", payload.get("qualityScore"))
    _require(_is_number(score) and 0 <= score <= 10, "quality_score must be in [0, 10]", operation)

    suggestions = payload.get("suggestions") or []
    _require(
        isinstance(suggestions, list) and all(isinstance(s, str) for s in suggestions),
        "suggestions must be a list of strings",
        operation,
    )

    return {
        "is_valid": is_valid,
        "confidence": float(confidence),
        "issues": tuple(issues),
        "quality_score": float(score),
        "suggestions": tuple(suggestions),
    }
