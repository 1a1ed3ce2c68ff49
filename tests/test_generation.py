import json
from types import SimpleNamespace

import pytest

from programs.form_agent.errors import FormValidationError
from programs.form_agent.generation import generate_question
from programs.form_generator.program import AgentPrograms

RATING_SPEC = {"question_specs": "Overall rating from 1 to 5", "type": "rating"}

MISSING_CONFIG = {
    "title": "How would you rate us?",
    "display": {"inputType": "star"},
    "submissionBehavior": "autoAnswer",
}
VALID_RATING = {**MISSING_CONFIG, "ratingConfig": {"min": 1, "max": 5}}


class RecordingRepairer:
    def __init__(self, *outputs):
        self.outputs = list(outputs)
        self.calls = []

    def __call__(self, **kwargs):
        self.calls.append(kwargs)
        out = self.outputs.pop(0) if self.outputs else ""
        return SimpleNamespace(repaired_question_json=out if isinstance(out, str) else json.dumps(out))


def _programs(first, repairer) -> AgentPrograms:
    return AgentPrograms(
        planner=lambda **kwargs: None,
        question_generator=lambda **kwargs: SimpleNamespace(question_json=json.dumps(first)),
        question_repairer=repairer,
        tool_selector=lambda **kwargs: None,
    )


def _generate(programs):
    return generate_question(programs, spec=RATING_SPEC, form_title="Feedback", question_no=1)


def test_valid_first_candidate_skips_repair_program():
    repairer = RecordingRepairer()
    question = _generate(_programs(VALID_RATING, repairer))
    assert question["ratingConfig"] == {"min": 1, "max": 5}
    assert question["questionNo"] == 1
    assert repairer.calls == []


def test_repair_program_receives_issues_and_failing_payload():
    repairer = RecordingRepairer(VALID_RATING)
    question = _generate(_programs(MISSING_CONFIG, repairer))

    assert question["questionType"] == "rating"
    assert question["ratingConfig"] == {"min": 1, "max": 5}
    assert len(repairer.calls) == 1
    call = repairer.calls[0]
    assert call["question_type"] == "rating"
    assert "ratingConfig" in call["validation_errors"]
    sent = json.loads(call["question_json"])
    assert sent["title"] == "How would you rate us?"
    assert "ratingConfig" not in sent
    assert sent["questionType"] == "rating"


def test_third_attempt_can_still_succeed():
    repairer = RecordingRepairer("not json at all", VALID_RATING)
    question = _generate(_programs(MISSING_CONFIG, repairer))

    assert question["ratingConfig"] == {"min": 1, "max": 5}
    assert len(repairer.calls) == 2
    assert repairer.calls[1]["validation_errors"] == "Output was not valid JSON."
    assert repairer.calls[1]["question_json"] == "not json at all"


def test_exhausted_attempts_raise_with_last_issues():
    repairer = RecordingRepairer(MISSING_CONFIG, MISSING_CONFIG, VALID_RATING)
    with pytest.raises(FormValidationError) as excinfo:
        _generate(_programs(MISSING_CONFIG, repairer))

    err = excinfo.value
    assert str(err).startswith("Question generation failed after 3 attempts.")
    assert any("ratingConfig" in issue for issue in err.issues)
    assert err.payload["title"] == "How would you rate us?"
    # The third candidate is the last one validated; no fourth repair is requested.
    assert len(repairer.calls) == 2


def test_max_attempts_of_one_never_calls_repair_program():
    repairer = RecordingRepairer(VALID_RATING)
    with pytest.raises(FormValidationError):
        generate_question(
            _programs(MISSING_CONFIG, repairer), spec=RATING_SPEC, form_title="Feedback", question_no=1, max_attempts=1
        )
    assert repairer.calls == []
