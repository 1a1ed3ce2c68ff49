import pytest

from programs.form_agent.errors import FormValidationError
from programs.form_schema.validation import (
    best_effort_parse_json,
    parse_question,
    validate_question,
    validate_questions,
)


def _text_question(**overrides) -> dict:
    q = {
        "type": "question",
        "id": "email",
        "questionNo": 1,
        "questionType": "text",
        "title": "Your email",
        "display": {"inputType": "email"},
        "submissionBehavior": "manualUnclear",
        "validations": {"required": {"value": True, "message": "Required"}},
    }
    q.update(overrides)
    return q


def test_valid_text_question_has_no_issues():
    assert validate_question(_text_question()) == []


def test_input_type_not_allowed_for_question_type():
    issues = validate_question(_text_question(display={"inputType": "star"}, submissionBehavior="autoAnswer"))
    assert any(i.startswith("Input type 'star' is not valid for question type 'text'.") for i in issues)


def test_unexpected_submission_behavior_is_reported():
    issues = validate_question(_text_question(submissionBehavior="autoAnswer"))
    assert "Submission behavior 'autoAnswer' is unexpected for input type 'email'. Expected 'manualUnclear'." in issues


def test_dropdown_with_few_options_is_flagged():
    q = {
        "type": "question",
        "id": "size",
        "questionType": "singleChoice",
        "title": "Size",
        "display": {"inputType": "dropdown"},
        "submissionBehavior": "autoAnswer",
        "options": [{"value": "s", "label": "S"}, {"value": "m", "label": "M"}],
    }
    issues = validate_question(q)
    assert issues == ["Input type 'dropdown' is typically used for >=4 options. Consider 'radio'."]


def test_rating_max_must_exceed_min():
    q = {
        "type": "question",
        "id": "r",
        "questionType": "rating",
        "title": "Rate",
        "display": {"inputType": "star"},
        "submissionBehavior": "autoAnswer",
        "ratingConfig": {"min": 5, "max": 5},
    }
    issues = validate_question(q)
    assert any("greater than 'min'" in i for i in issues)


def test_parse_question_raises_with_issues():
    with pytest.raises(FormValidationError) as exc_info:
        parse_question(_text_question(submissionBehavior="autoAnswer"))
    assert exc_info.value.issues
    assert exc_info.value.payload["id"] == "email"


def test_validate_questions_splits_valid_and_invalid():
    good = _text_question()
    bad = _text_question(id="bad", submissionBehavior="autoAnswer")
    valid, problems = validate_questions([good, bad])
    assert valid == [good]
    assert list(problems) == ["bad"]


def test_best_effort_parse_json_handles_fences_and_prose():
    assert best_effort_parse_json('```json\n{"a": 1}\n```') == {"a": 1}
    assert best_effort_parse_json('Here you go: [1, 2] thanks') == [1, 2]
    assert best_effort_parse_json("nope") is None
