"""
Prompt templates for the survey AI pipeline.
"""

from .survey_prompts import (
    QUESTION_GENERATION_SYSTEM_PROMPT,
    RESPONSE_VALIDATION_SYSTEM_PROMPT,
    create_question_generation_prompt,
    create_follow_up_prompt,
    create_response_validation_prompt,
)

__all__ = [
    "QUESTION_GENERATION_SYSTEM_PROMPT",
    "RESPONSE_VALIDATION_SYSTEM_PROMPT",
    "create_question_generation_prompt",
    "create_follow_up_prompt",
    "create_response_validation_prompt",
]
