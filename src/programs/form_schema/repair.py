"""
Deterministic repair for model-generated questions.

`repair_question()` is pure: it never mutates its input, and it returns the very same
object when nothing needed fixing so callers can use `is` for change detection.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

ALLOWED_INPUT_TYPES: Dict[str, List[str]] = {
    "multipleChoice": ["checkbox", "multiSelectDropdown"],
    "singleChoice": ["radio", "dropdown"],
    "text": ["text", "textarea", "email", "url", "tel", "number", "password", "country"],
    "date": ["date", "dateRange"],
    "rating": ["star"],
    "linearScale": ["linearScale"],
    "likertScale": ["likertScale"],
    "address": ["addressBlock"],
    "ranking": ["rankOrder"],
    "fileUpload": ["file"],
}

EXPECTED_SUBMISSION_BEHAVIOR: Dict[str, str] = {
    "radio": "autoAnswer",
    "dropdown": "autoAnswer",
    "date": "autoAnswer",
    "dateRange": "autoAnswer",
    "star": "autoAnswer",
    "linearScale": "autoAnswer",
    "likertScale": "autoAnswer",
    "file": "autoAnswer",
    "checkbox": "manualAnswer",
    "multiSelectDropdown": "manualAnswer",
    "addressBlock": "manualAnswer",
    "rankOrder": "manualAnswer",
    "email": "manualUnclear",
    "url": "manualUnclear",
    "number": "manualUnclear",
    "tel": "manualUnclear",
    "textarea": "manualUnclear",
    "text": "manualUnclear",
    "password": "manualUnclear",
    "country": "manualUnclear",
}

# (compact, dropdown) control per choice question type.
CHOICE_CONTROLS: Dict[str, tuple[str, str]] = {
    "multipleChoice": ("checkbox", "multiSelectDropdown"),
    "singleChoice": ("radio", "dropdown"),
}

DROPDOWN_MIN_OPTIONS = 4

_MAX_PASSES = 2


def _options_count(question: Dict[str, Any]) -> Optional[int]:
    options = question.get("options")
    if isinstance(options, list):
        return len(options)
    return None


def _preferred_input_type(question_type: str, options_count: Optional[int]) -> str:
    controls = CHOICE_CONTROLS.get(question_type)
    if controls:
        compact, dropdown = controls
        if options_count is not None and options_count >= DROPDOWN_MIN_OPTIONS:
            return dropdown
        return compact
    return ALLOWED_INPUT_TYPES[question_type][0]


def _repair_input_type(question: Dict[str, Any]) -> Optional[str]:
    """
    Return the input type this question should use, or None when unchanged.
    """
    q_type = question.get("questionType")
    display = question.get("display")
    if not isinstance(display, dict) or not isinstance(q_type, str):
        return None
    input_type = display.get("inputType")
    if not isinstance(input_type, str):
        return None
    allowed = ALLOWED_INPUT_TYPES.get(q_type)
    if not allowed:
        return None

    count = _options_count(question)
    if input_type not in allowed:
        return _preferred_input_type(q_type, count)

    # Allowed but wrong family for the option count.
    controls = CHOICE_CONTROLS.get(q_type)
    if controls and count is not None:
        compact, dropdown = controls
        if input_type == compact and count >= DROPDOWN_MIN_OPTIONS:
            return dropdown
        if input_type == dropdown and count < DROPDOWN_MIN_OPTIONS:
            return compact
    return None


def _repair_submission_behavior(question: Dict[str, Any]) -> Optional[str]:
    display = question.get("display")
    if not isinstance(display, dict):
        return None
    expected = EXPECTED_SUBMISSION_BEHAVIOR.get(str(display.get("inputType") or ""))
    if expected and question.get("submissionBehavior") != expected:
        return expected
    return None


def _repair_once(question: Dict[str, Any]) -> Dict[str, Any]:
    out = question
    new_input_type = _repair_input_type(out)
    if new_input_type is not None:
        out = dict(out)
        out["display"] = {**out["display"], "inputType": new_input_type}
    new_behavior = _repair_submission_behavior(out)
    if new_behavior is not None:
        if out is question:
            out = dict(out)
        out["submissionBehavior"] = new_behavior
    return out


def repair_question(question: Any) -> Any:
    """
    Fix `display.inputType` and `submissionBehavior` so they satisfy the schema rules.

    Non-dict input is returned untouched.
    """
    if not isinstance(question, dict):
        return question
    current = question
    for _ in range(_MAX_PASSES):
        repaired = _repair_once(current)
        if repaired is current:
            break
        current = repaired
    return current


def repair_questions(questions: Any) -> Any:
    if not isinstance(questions, list):
        return questions
    return [repair_question(q) for q in questions]


def needs_repair(question: Any) -> bool:
    return repair_question(question) is not question


__all__ = [
    "ALLOWED_INPUT_TYPES",
    "CHOICE_CONTROLS",
    "DROPDOWN_MIN_OPTIONS",
    "EXPECTED_SUBMISSION_BEHAVIOR",
    "needs_repair",
    "repair_question",
    "repair_questions",
]
