"""
Survey AI Prompt Templates

Prompts used by the AI gateway to generate survey questions, adaptive
follow-ups, and to assess the quality of submitted answers. Every prompt
asks for a JSON object so replies can be schema-validated before use.
"""

import json
from typing import Any, Dict, List, Optional


QUESTION_GENERATION_SYSTEM_PROMPT = """
ROLE: Expert survey designer for public statistical programmes
OBJECTIVE: Write clear, unbiased, culturally appropriate survey questions

Questions must be suitable for diverse populations, including rural and
urban respondents with varying literacy. Avoid leading wording, double-barrelled
questions and jargon. Respect cultural sensitivities.

Always answer with a single JSON object and nothing else.
"""

RESPONSE_VALIDATION_SYSTEM_PROMPT = """
ROLE: Data validation expert for survey operations
OBJECTIVE: Judge one survey answer for relevance, consistency and completeness

Flag potential issues (spam, contradictions, missing information) while being
sensitive to cultural context and language variations. Be conservative: an
unusual answer is not an invalid answer.

Always answer with a single JSON object and nothing else.
"""


# Shape of one question in every generation reply
QUESTION_FORMAT = """
{
  "questions": [
    {
      "type": "text | multiple_choice | rating | number | date | boolean | dropdown | matrix",
      "text": "The question text",
      "description": "Helper text or context",
      "required": true,
      "options": ["only", "for", "multiple_choice", "and", "dropdown"],
      "validation": {"min": 1, "max": 5},
      "confidence": 0.0
    }
  ]
}
"""


def create_question_generation_prompt(
    prompts: List[str],
    category: str,
    target_audience: str,
    language: str = "en",
    question_count: int = 10,
) -> str:
    """
    Create the user prompt for generating a fresh set of survey questions.

    Args:
        prompts: Free-text context prompts from the survey author
        category: Survey category (e.g. "health", "employment")
        target_audience: Who will answer the survey
        language: Language code of the survey
        question_count: How many questions to ask for

    Returns:
        Formatted prompt string
    """
    return f"""
Generate {question_count} survey questions for the following context:

Category: {category}
Target Audience: {target_audience}
Language: {language}
Context Prompts: {", ".join(prompts)}

Requirements:
1. Include a mix of question types (multiple choice, text, rating scales)
2. Ensure cultural sensitivity and language accessibility
3. Include validation rules where they make sense
4. Consider both rural and urban populations
5. Give each question a confidence score between 0 and 1

Return a JSON object in exactly this format:
{QUESTION_FORMAT}
"""


def create_follow_up_prompt(
    survey_context: Dict[str, Any],
    previous_responses: List[Dict[str, Any]],
    current_index: int,
    max_questions: int = 3,
) -> str:
    """Create the user prompt for adaptive follow-up questions."""
    return f"""
Based on the following survey responses, generate 1-{max_questions} adaptive follow-up questions:

Survey Context: {json.dumps(survey_context, default=str)}
Previous Responses: {json.dumps(previous_responses, default=str)}
Current Question Index: {current_index}

Generate follow-up questions that:
1. Build upon previous responses
2. Explore interesting patterns or anomalies
3. Gather deeper insights
4. Keep the survey short and respondents engaged

Return a JSON object in exactly this format:
{QUESTION_FORMAT}
"""


def create_response_validation_prompt(
    question_text: str,
    question_type: str,
    answer: Any,
    metadata: Optional[Dict[str, Any]] = None,
) -> str:
    """Create the user prompt for assessing one answer."""
    return f"""
Analyze this survey response for quality, consistency, and completeness:

Question: {question_text}
Question Type: {question_type}
Response: {json.dumps(answer, default=str)}
Respondent Context: {json.dumps(metadata or {}, default=str)}

Check for:
1. Response relevance and appropriateness
2. Potential spam or low-quality responses
3. Inconsistencies or logical errors
4. Missing required information

Return analysis as a JSON object with:
- isValid: boolean
- confidence: score 0-1
- issues: array of identified issues (strings)
- suggestions: array of improvement suggestions (strings)
- quality_score: overall quality rating 0-10
"""
