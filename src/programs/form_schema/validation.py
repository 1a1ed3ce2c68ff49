from __future__ import annotations

import json
import re
from typing import Any, Dict, List, Tuple

from pydantic import TypeAdapter, ValidationError

from programs.form_agent.errors import FormValidationError
from programs.form_schema.repair import (
    ALLOWED_INPUT_TYPES,
    CHOICE_CONTROLS,
    DROPDOWN_MIN_OPTIONS,
    EXPECTED_SUBMISSION_BEHAVIOR,
)
from schemas.questions import Question

_QUESTION_ADAPTER: TypeAdapter = TypeAdapter(Question)


def _safe_json_loads(text: str) -> Any:
    try:
        return json.loads(text)
    except Exception:
        return None


def _strip_code_fences(s: str) -> str:
    if not s:
        return s
    t = str(s).strip()
    t = re.sub(r"^```(?:json)?\s*", "", t, flags=re.IGNORECASE)
    t = re.sub(r"\s*```$", "", t, flags=re.IGNORECASE)
    return t.strip()


def best_effort_parse_json(text: str) -> Any:
    if not text:
        return None
    t = _strip_code_fences(str(text))
    parsed = _safe_json_loads(t)
    if parsed is not None:
        return parsed
    m = re.search(r"(\[[\s\S]*\]|\{[\s\S]*\})", t)
    if not m:
        return None
    return _safe_json_loads(m.group(0))


def _format_pydantic_errors(exc: ValidationError) -> List[str]:
    out: List[str] = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc") or [])
        msg = str(err.get("msg") or "invalid")
        out.append(f"{loc}: {msg}" if loc else msg)
    return out


def structural_issues(question: Dict[str, Any]) -> List[str]:
    """
    Cross-field invariants the per-variant models cannot express.
    """
    issues: List[str] = []
    q_type = str(question.get("questionType") or "")
    display = question.get("display") if isinstance(question.get("display"), dict) else {}
    input_type = str(display.get("inputType") or "")

    allowed = ALLOWED_INPUT_TYPES.get(q_type)
    if allowed and input_type not in allowed:
        issues.append(
            f"Input type '{input_type}' is not valid for question type '{q_type}'. Allowed: {', '.join(allowed)}"
        )

    options = question.get("options")
    if q_type in CHOICE_CONTROLS and isinstance(options, list) and options:
        compact, dropdown = CHOICE_CONTROLS[q_type]
        if len(options) < DROPDOWN_MIN_OPTIONS and input_type == dropdown:
            issues.append(
                f"Input type '{input_type}' is typically used for >={DROPDOWN_MIN_OPTIONS} options. Consider '{compact}'."
            )
        elif len(options) >= DROPDOWN_MIN_OPTIONS and input_type == compact:
            issues.append(
                f"Input type '{input_type}' is typically used for <{DROPDOWN_MIN_OPTIONS} options. Consider '{dropdown}'."
            )

    expected = EXPECTED_SUBMISSION_BEHAVIOR.get(input_type)
    behavior = question.get("submissionBehavior")
    if expected and behavior != expected:
        issues.append(
            f"Submission behavior '{behavior}' is unexpected for input type '{input_type}'. Expected '{expected}'."
        )
    return issues


def validate_question(question: Any) -> List[str]:
    """
    Return every issue found for one question (empty list == valid).
    """
    if not isinstance(question, dict):
        return ["Question must be an object."]
    issues: List[str] = []
    try:
        _QUESTION_ADAPTER.validate_python(question)
    except ValidationError as exc:
        issues.extend(_format_pydantic_errors(exc))
    issues.extend(structural_issues(question))
    return issues


def parse_question(question: Any) -> Any:
    issues = validate_question(question)
    if issues:
        raise FormValidationError("Question failed validation.", issues=issues, payload=question)
    return _QUESTION_ADAPTER.validate_python(question)


def validate_questions(questions: List[Any]) -> Tuple[List[Dict[str, Any]], Dict[str, List[str]]]:
    """
    Split a question list into (valid, {question_id_or_index: issues}).
    """
    valid: List[Dict[str, Any]] = []
    problems: Dict[str, List[str]] = {}
    for i, q in enumerate(questions or []):
        issues = validate_question(q)
        if issues:
            key = str(q.get("id") or i) if isinstance(q, dict) else str(i)
            problems[key] = issues
        else:
            valid.append(q)
    return valid, problems


__all__ = [
    "best_effort_parse_json",
    "parse_question",
    "structural_issues",
    "validate_question",
    "validate_questions",
]
