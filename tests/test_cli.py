"""
Tests for the command line interface.
"""

import json
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from surveyflow import cli
from surveyflow.schemas.survey import Question, QuestionType


SURVEY = {
    "survey_id": "water-2026",
    "title": "Household water access",
    "questions": [
        {"id": "has_tap", "type": "boolean", "text": "Do you have a tap at home?", "order": 1, "required": True},
        {"id": "source", "type": "multiple_choice", "text": "Main source?", "order": 2,
         "options": ["well", "river", "tanker"]},
        {"id": "comments", "type": "text", "text": "Anything else?", "order": 3},
    ],
    "rules": [
        {"questionId": "has_tap", "condition": {"operator": "equals", "value": True},
         "action": {"type": "skip_to", "targetQuestionId": "comments"}},
    ],
}


@pytest.fixture
def survey_file(tmp_path):
    path = tmp_path / "survey.json"
    path.write_text(json.dumps(SURVEY))
    return path


@pytest.fixture
def env_file(tmp_path):
    path = tmp_path / ".env"
    path.write_text("SURVEYFLOW_LOG_LEVEL=WARNING\n")
    return path


def write_variant(tmp_path, extra_rule):
    data = json.loads(json.dumps(SURVEY))
    data["rules"].append(extra_rule)
    path = tmp_path / "variant.json"
    path.write_text(json.dumps(data))
    return path


# ═══════════════════════════════════════════════════════════════
# VALIDATE
# ═══════════════════════════════════════════════════════════════

def test_validate_accepts_publishable_survey(survey_file, env_file, capsys):
    assert cli.main(["--env-file", str(env_file), "validate", str(survey_file)]) == 0
    out = capsys.readouterr().out
    assert "Household water access" in out
    assert "Questions: 3" in out


def test_validate_rejects_cycle(tmp_path, env_file, capsys):
    path = write_variant(tmp_path, {
        "questionId": "comments", "condition": {"operator": "equals", "value": "again"},
        "action": {"type": "skip_to", "targetQuestionId": "has_tap"},
    })
    assert cli.main(["--env-file", str(env_file), "validate", str(path)]) == 1
    assert "cycle" in capsys.readouterr().out


def test_validate_rejects_dangling_target(tmp_path, env_file, capsys):
    path = write_variant(tmp_path, {
        "questionId": "source", "condition": {"operator": "equals", "value": "river"},
        "action": {"type": "show_question", "targetQuestionId": "ghost"},
    })
    assert cli.main(["--env-file", str(env_file), "validate", str(path)]) == 1
    assert "ghost" in capsys.readouterr().out


def test_validate_missing_file(tmp_path, env_file):
    assert cli.main(["--env-file", str(env_file), "validate", str(tmp_path / "nope.json")]) == 1


# ═══════════════════════════════════════════════════════════════
# RUN
# ═══════════════════════════════════════════════════════════════

def test_run_offline_writes_session(survey_file, env_file, tmp_path, monkeypatch, capsys):
    answers = iter(["maybe", "yes", "all good"])
    monkeypatch.setattr("builtins.input", lambda prompt="": next(answers))
    output = tmp_path / "answers.json"

    code = cli.main(["--env-file", str(env_file), "run", str(survey_file), "--no-ai", "--output", str(output)])

    assert code == 0
    out = capsys.readouterr().out
    assert "Answer must be yes or no" in out
    assert "skipping 1 question(s)" in out
    session = json.loads(output.read_text())
    assert [a["question_id"] for a in session["answers"]] == ["has_tap", "comments"]
    assert session["answers"][0]["value"] is True
    assert session["state"]["status"] == "completed"


def test_run_quit_abandons(survey_file, env_file, monkeypatch, capsys):
    monkeypatch.setattr("builtins.input", lambda prompt="": "quit")
    assert cli.main(["--env-file", str(env_file), "run", str(survey_file), "--no-ai"]) == 0
    assert "Survey abandoned" in capsys.readouterr().out


def test_run_loads_settings_once(survey_file, env_file, monkeypatch):
    loaded = []
    original = cli.Settings.from_env

    def counting_from_env(env_file=None):
        settings = original(env_file)
        loaded.append(settings)
        return settings

    received = []

    def offline_services(settings, **kwargs):
        received.append(settings)
        return cli.SurveyServices.offline()

    monkeypatch.setattr(cli.Settings, "from_env", staticmethod(counting_from_env))
    monkeypatch.setattr(cli.SurveyServices, "from_settings", staticmethod(offline_services))
    monkeypatch.setattr("builtins.input", lambda prompt="": "quit")

    assert cli.main(["--env-file", str(env_file), "run", str(survey_file)]) == 0
    assert len(loaded) == 1
    assert received == loaded


# ═══════════════════════════════════════════════════════════════
# GENERATE
# ═══════════════════════════════════════════════════════════════

@pytest.mark.parametrize("count", ["0", "51"])
def test_generate_rejects_count_out_of_range(env_file, monkeypatch, capsys, count):
    built = []
    monkeypatch.setattr(cli.SurveyServices, "from_settings", staticmethod(lambda settings, **kw: built.append(settings)))

    code = cli.main(["--env-file", str(env_file), "generate", "--prompt", "water", "--count", count])

    assert code == 1
    assert "question_count must be between 1 and 50" in capsys.readouterr().out
    assert built == []


# ═══════════════════════════════════════════════════════════════
# INPUT COERCION
# ═══════════════════════════════════════════════════════════════

class TestCoerceAnswer:

    def test_boolean(self):
        q = Question(id="b", type=QuestionType.BOOLEAN, text="?")
        assert cli.coerce_answer(q, "Y") is True
        assert cli.coerce_answer(q, "no") is False
        assert cli.coerce_answer(q, "perhaps") == "perhaps"

    def test_number(self):
        q = Question(id="n", type=QuestionType.NUMBER, text="?")
        assert cli.coerce_answer(q, "42") == 42
        assert cli.coerce_answer(q, "2.5") == 2.5
        assert cli.coerce_answer(q, "lots") == "lots"

    def test_choices_by_number_or_label(self):
        q = Question(id="c", type=QuestionType.MULTIPLE_CHOICE, text="?", options=("well", "river", "tanker"))
        assert cli.coerce_answer(q, "2") == "river"
        assert cli.coerce_answer(q, "1, tanker") == ["well", "tanker"]

    def test_blank_is_none(self):
        q = Question(id="t", type=QuestionType.TEXT, text="?")
        assert cli.coerce_answer(q, "   ") is None
