"""
CLI Interface for the survey flow engine

    surveyflow validate survey.json     publish check: strict graph build
    surveyflow run survey.json          answer a survey in the terminal
    surveyflow generate --prompt ...    draft questions with the AI gateway
"""

import argparse
import json
import sys
from pathlib import Path
from typing import Any, Callable, Optional

from .ai.gateway import GenerationRequest
from .branching.resolver import FlowStatus
from .config import Settings, configure_logging
from .errors import AnswerRejected, CycleDetectedError, RuleConfigurationError, UpstreamError
from .schemas.survey import Question, QuestionType, SurveyDefinition
from .session import SurveyServices, SurveySession


def print_header():
    """Print CLI header."""
    print("""
╔═══════════════════════════════════════════════════════════════╗
║                                                               ║
║     SURVEYFLOW - Conditional survey engine                    ║
║                                                               ║
╚═══════════════════════════════════════════════════════════════╝
    """)


def load_survey(path: Path) -> SurveyDefinition:
    """Read a survey document from a JSON file."""
    data = json.loads(Path(path).read_text())
    return SurveyDefinition.from_dict(data)


def coerce_answer(question: Question, raw: str) -> Any:
    """Turn terminal input into a typed answer for the question."""
    text = raw.strip()
    if text == "":
        return None

    if question.type == QuestionType.BOOLEAN:
        lowered = text.lower()
        if lowered in ("y", "yes", "true", "1"):
            return True
        if lowered in ("n", "no", "false", "0"):
            return False
        return text

    if question.type in (QuestionType.NUMBER, QuestionType.RATING):
        try:
            number = float(text)
        except ValueError:
            return text
        return int(number) if number.is_integer() else number

    if question.is_choice and question.options:
        picked = []
        for part in text.split(",") if question.type == QuestionType.MULTIPLE_CHOICE else [text]:
            part = part.strip()
            # Allow picking by option number
            if part.isdigit() and 1 <= int(part) <= len(question.options):
                part = question.options[int(part) - 1]
            picked.append(part)
        if question.type == QuestionType.DROPDOWN:
            return picked[0]
        return picked if len(picked) > 1 else picked[0]

    return text


def format_question(question: Question, position: int, total: int) -> str:
    """Render a question for the terminal."""
    lines = [f"\n[{position}/{total}] {question.text}"]
    if question.is_ai_generated:
        lines[0] += "  (follow-up)"
    if question.description:
        lines.append(f"    {question.description}")
    for i, option in enumerate(question.options, 1):
        lines.append(f"    {i}. {option}")
    if question.type == QuestionType.BOOLEAN:
        lines.append("    (yes/no)")
    if not question.required:
        lines.append("    (optional - press Enter to skip)")
    return "\n".join(lines)


# ============================================================
# Commands
# ============================================================

def cmd_validate(args) -> int:
    """Strict build of the flow graph; non-zero exit if it cannot be published."""
    try:
        survey = load_survey(args.survey)
    except (OSError, ValueError, RuleConfigurationError) as e:
        print(f"Error: could not load {args.survey}: {e}")
        return 1

    try:
        graph = survey.build_flow_graph(strict=True)
    except CycleDetectedError as e:
        print(f"✗ {survey.title or survey.survey_id}: {e}")
        return 1
    except RuleConfigurationError as e:
        print(f"✗ {survey.title or survey.survey_id}: {e}")
        return 1

    print(f"✓ {survey.title or survey.survey_id} (version {survey.version})")
    print(f"  Questions: {len(graph)}")
    print(f"  Rules:     {len(graph.rules)}")
    for question in graph.questions:
        print(f"    {question.order:>3}. [{question.type.value}] {question.id}: {question.text}")
    for rule in graph.rules:
        print(f"    - {rule.describe()}")
    return 0


def run_interactive_survey(session: SurveySession, input_fn: Optional[Callable[[str], str]] = None) -> dict:
    """Walk the respondent through a session in the terminal."""
    input_fn = input_fn or input
    state = session.start()

    while not state.is_finished:
        question = session.current_question
        progress = session.progress()
        total = progress["answered"] + progress["remaining"]
        print(format_question(question, progress["answered"] + 1, total))

        raw = input_fn("\nYour answer: ")
        if raw.strip().lower() == "quit":
            print("\nSurvey abandoned.")
            return session.to_dict()

        try:
            result = session.submit_answer(question.id, coerce_answer(question, raw))
        except AnswerRejected as e:
            for issue in e.issues:
                print(f"  ! {issue}")
            continue

        if result.inserted:
            print(f"  + {len(result.inserted)} follow-up question(s) added")
        if result.flagged and result.verdict is not None:
            print(f"  ? This answer looks unusual: {', '.join(result.verdict.issues) or 'low quality score'}")
        if result.state.skipped:
            print(f"  (skipping {len(result.state.skipped)} question(s))")
        state = result.state

    if state.status == FlowStatus.TERMINATED:
        print(f"\nThank you. The survey ended early ({state.reason}).")
    else:
        print("\n✓ Survey complete. Thank you!")
    return session.to_dict()


def cmd_run(args, settings: Settings, input_fn: Optional[Callable[[str], str]] = None) -> int:
    try:
        survey = load_survey(args.survey)
    except (OSError, ValueError, RuleConfigurationError) as e:
        print(f"Error: could not load {args.survey}: {e}")
        return 1

    if args.adaptive:
        survey.ai_config.adaptive_questioning.enabled = True
    if args.no_ai:
        survey.ai_enabled = False
        services = SurveyServices.offline()
    else:
        services = SurveyServices.from_settings(settings)

    try:
        session = SurveySession(survey, services)
    except (CycleDetectedError, RuleConfigurationError) as e:
        print(f"Error: survey cannot be run: {e}")
        services.close()
        return 1

    print(f"\n{survey.title}")
    if survey.description:
        print(survey.description)

    try:
        result = run_interactive_survey(session, input_fn)
    finally:
        services.close()

    if args.output:
        Path(args.output).write_text(json.dumps(result, indent=2, default=str))
        print(f"Responses saved to: {args.output}")
    return 0


def cmd_generate(args, settings: Settings) -> int:
    try:
        request = GenerationRequest(
            prompts=args.prompt,
            category=args.category,
            target_audience=args.audience,
            language=args.language,
            question_count=args.count,
        )
    except ValueError as e:
        print(f"Error: {e}")
        return 1

    services = SurveyServices.from_settings(settings)
    try:
        questions = services.generate_questions(request)
    except UpstreamError as e:
        print(f"Error: question generation failed: {e}")
        return 1
    finally:
        services.close()

    print(json.dumps({"questions": [q.to_dict() for q in questions]}, indent=2))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="surveyflow",
        description="Conditional survey flow engine with AI-assisted questions",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Check a survey before publishing it
  surveyflow validate survey.json

  # Take a survey in the terminal without any AI calls
  surveyflow run survey.json --no-ai

  # Take a survey with adaptive follow-ups switched on
  surveyflow run survey.json --adaptive --output answers.json

  # Draft questions for a new survey
  surveyflow generate --prompt "household water access" --category health --count 5
        """
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Logging level (default: SURVEYFLOW_LOG_LEVEL or INFO)"
    )
    parser.add_argument(
        "--env-file",
        type=Path,
        default=None,
        help="Path to a .env file to load"
    )
    sub = parser.add_subparsers(dest="command", required=True)

    validate = sub.add_parser("validate", help="Check that a survey can be published")
    validate.add_argument("survey", type=Path, help="Survey JSON file")

    run = sub.add_parser("run", help="Answer a survey in the terminal")
    run.add_argument("survey", type=Path, help="Survey JSON file")
    run.add_argument("--adaptive", action="store_true", help="Enable adaptive follow-up questions")
    run.add_argument("--no-ai", action="store_true", help="Disable every AI feature")
    run.add_argument("--output", "-o", default=None, help="Write the session as JSON to this file")

    generate = sub.add_parser("generate", help="Generate survey questions with the AI gateway")
    generate.add_argument("--prompt", "-p", action="append", required=True, help="Context prompt (repeatable)")
    generate.add_argument("--category", default="other")
    generate.add_argument("--audience", default="general_public")
    generate.add_argument("--language", default="en")
    generate.add_argument("--count", type=int, default=10)

    return parser


def main(argv: Optional[list] = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    settings = Settings.from_env(args.env_file)
    configure_logging(args.log_level or settings.log_level)

    if args.command == "validate":
        return cmd_validate(args)

    print_header()
    if args.command == "run":
        return cmd_run(args, settings)
    return cmd_generate(args, settings)


if __name__ == "__main__":
    sys.exit(main())
