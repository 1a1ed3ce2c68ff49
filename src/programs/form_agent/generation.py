"""
Synchronous generation steps run by the createForm tool (offloaded to a worker thread).

- `plan_form()`: planner call -> title, description, question specs
- `generate_question()`: one question with bounded repair-and-retry
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional

from programs.form_agent.errors import FormValidationError
from programs.form_agent.forms import new_id
from programs.form_generator.program import AgentPrograms
from programs.form_schema.repair import ALLOWED_INPUT_TYPES, repair_question
from programs.form_schema.validation import best_effort_parse_json, validate_question
from schemas.questions import QUESTION_TYPES

logger = logging.getLogger("form_agent.generation")

MAX_GENERATION_ATTEMPTS = 3


def plan_form(programs: AgentPrograms, user_prompt: str) -> Dict[str, Any]:
    pred = programs.planner(user_prompt=user_prompt, question_types=list(QUESTION_TYPES))
    title = str(getattr(pred, "title", "") or "").strip()
    description = str(getattr(pred, "description", "") or "").strip()
    details = best_effort_parse_json(str(getattr(pred, "question_details_json", "") or ""))
    if isinstance(details, dict):
        details = details.get("questionDetails") or details.get("question_details")

    specs: List[Dict[str, str]] = []
    for item in details if isinstance(details, list) else []:
        if not isinstance(item, dict):
            continue
        spec = str(item.get("question_specs") or item.get("questionSpecs") or "").strip()
        q_type = str(item.get("type") or "").strip()
        if spec and q_type in QUESTION_TYPES:
            specs.append({"question_specs": spec, "type": q_type})

    issues: List[str] = []
    if not title:
        issues.append("title: empty")
    if not specs:
        issues.append("question_details_json: at least one question detail is required")
    if issues:
        raise FormValidationError("Failed to obtain complete form metadata.", issues=issues, payload=details)

    return {
        "title": title,
        "description": description,
        "questionDetails": specs,
        "journeyScript": str(getattr(pred, "journey_script", "") or "").strip(),
    }


def _normalize_question(raw: Any, *, question_type: str, question_no: int) -> Any:
    if not isinstance(raw, dict):
        return raw
    out = dict(raw)
    out.setdefault("type", "question")
    out.setdefault("questionType", question_type)
    if not str(out.get("id") or "").strip():
        out["id"] = new_id()
    out["questionNo"] = question_no
    return out


def generate_question(
    programs: AgentPrograms,
    *,
    spec: Dict[str, str],
    form_title: str,
    question_no: int,
    max_attempts: int = MAX_GENERATION_ATTEMPTS,
) -> Dict[str, Any]:
    """
    Generate one question, feeding validation errors back to the repair program.

    Deterministic repair runs before every validation; the model is only asked to fix
    what deterministic repair cannot. Raises `FormValidationError` once `max_attempts`
    candidates have failed.
    """
    q_type = spec["type"]
    pred = programs.question_generator(
        question_spec=spec["question_specs"],
        question_type=q_type,
        form_title=form_title,
        allowed_input_types_json=json.dumps(ALLOWED_INPUT_TYPES.get(q_type, [])),
    )
    raw_text = str(getattr(pred, "question_json", "") or "")

    last_issues: List[str] = []
    last_payload: Optional[Any] = None
    for attempt in range(1, max(1, int(max_attempts)) + 1):
        candidate = repair_question(
            _normalize_question(best_effort_parse_json(raw_text), question_type=q_type, question_no=question_no)
        )
        issues = validate_question(candidate) if candidate is not None else ["Output was not valid JSON."]
        if not issues:
            return candidate

        last_issues, last_payload = issues, candidate if candidate is not None else raw_text
        logger.info(
            "[FormAgent] question %s attempt %s/%s failed validation: %s",
            question_no,
            attempt,
            max_attempts,
            "; ".join(issues[:3]),
        )
        if attempt >= max_attempts:
            break
        fix = programs.question_repairer(
            question_json=raw_text if candidate is None else json.dumps(candidate, ensure_ascii=False),
            validation_errors="\n".join(issues),
            question_type=q_type,
        )
        raw_text = str(getattr(fix, "repaired_question_json", "") or "")

    raise FormValidationError(
        f"Question generation failed after {max_attempts} attempts.",
        issues=last_issues,
        payload=last_payload,
    )


def _readable_fields(question: Dict[str, Any]) -> Dict[str, Any]:
    out = dict(question)
    validations = out.get("validations") if isinstance(out.get("validations"), dict) else {}
    out["readableValidations"] = [
        str(v.get("originalText"))
        for v in validations.values()
        if isinstance(v, dict) and v.get("originalText")
    ]
    logic = out.get("conditionalLogic")
    if isinstance(logic, dict) and logic.get("prompt"):
        out["readableConditionalLogic"] = [str(logic["prompt"])]
    else:
        out["readableConditionalLogic"] = []
    return out


def generate_form(programs: AgentPrograms, user_prompt: str) -> Dict[str, Any]:
    """
    One-shot creation used by `POST /api/forms/{id}`: plan, then every question.

    Unlike the createForm tool this is all-or-nothing: the first question that cannot be
    made valid raises `FormValidationError`.
    """
    plan = plan_form(programs, f"Create a form about: {user_prompt}. Generate proper questions, options, and validations.")
    questions: List[Dict[str, Any]] = []
    for index, spec in enumerate(plan["questionDetails"], start=1):
        question = generate_question(programs, spec=spec, form_title=plan["title"], question_no=index)
        questions.append(_readable_fields(question))
    settings: Dict[str, Any] = {}
    if plan.get("journeyScript"):
        settings["journeyScript"] = plan["journeyScript"]
    return {
        "title": plan["title"],
        "description": plan["description"],
        "questions": questions,
        "settings": settings,
    }


__all__ = ["MAX_GENERATION_ATTEMPTS", "generate_form", "generate_question", "plan_form"]
