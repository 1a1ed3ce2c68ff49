"""
Prompt builders for the form generation programs.

Owned by `programs.form_generator`.
"""

from __future__ import annotations

from typing import Iterable, List


def _lines(*parts: str) -> str:
    out: List[str] = []
    for p in parts:
        t = str(p or "").strip()
        if t:
            out.append(t)
    return "\n\n".join(out).strip() + "\n"


def _bullets(title: str, bullets: Iterable[str]) -> str:
    items = [f"- {str(b).strip()}" for b in bullets if str(b or "").strip()]
    if not items:
        return ""
    return _lines(title.strip(), "\n".join(items))


def _role(*, who: str, goal: str) -> str:
    return _lines("ROLE AND GOAL:", who.strip(), goal.strip())


_QUESTION_SHAPE_RULES = [
    "Every question has: `id`, `type: \"question\"`, `questionType`, `title`, `description`, "
    "`display {inputType, showTitle, showDescription}`, `validations`, `submissionBehavior`.",
    "Allowed `display.inputType` per questionType: multipleChoice -> checkbox | multiSelectDropdown; "
    "singleChoice -> radio | dropdown; text -> text | textarea | email | url | tel | number | password | country; "
    "date -> date | dateRange; rating -> star; linearScale -> linearScale; likertScale -> likertScale; "
    "address -> addressBlock; ranking -> rankOrder; fileUpload -> file.",
    "Choice questions with 4 or more options use the dropdown control (dropdown / multiSelectDropdown); "
    "fewer than 4 options use radio / checkbox.",
    "`submissionBehavior`: autoAnswer for radio, dropdown, date, dateRange, star, linearScale, likertScale, file; "
    "manualAnswer for checkbox, multiSelectDropdown, addressBlock, rankOrder; manualUnclear for free-text inputs.",
    "singleChoice / multipleChoice / ranking carry `options: [{value, label}]` (at least one).",
    "rating carries `ratingConfig {min, max, step}` with max > min; linearScale carries "
    "`linearScaleConfig {start, end, step}` with end > start; likertScale carries `options` as 2 to 7 strings.",
    "Each validation rule is `{value, message}`; use `required` for mandatory questions.",
]


def build_form_plan_prompt() -> str:
    return _lines(
        "Plan a form from a user's request.",
        _role(
            who="You are the Form Planner.",
            goal="Turn the request into a title, a description and an ordered list of questions to generate.",
        ),
        _bullets(
            "INPUTS:",
            [
                "`user_prompt`: what the user wants the form to do.",
                "`question_types`: the question types you may choose from.",
            ],
        ),
        _bullets(
            "HARD RULES:",
            [
                "`question_details_json` MUST be a JSON array of `{\"question_specs\": str, \"type\": str}`.",
                "`type` MUST be one of `question_types`.",
                "`question_specs` describes one question precisely enough to generate it in isolation.",
                "Keep the list focused: between 3 and 12 questions unless the user asks for a specific number.",
                "`journey_script` is a short markdown outline of the respondent journey.",
                "Do not include prose, markdown, or code fences inside JSON fields.",
            ],
        ),
    )


def build_question_prompt() -> str:
    return _lines(
        "Generate exactly one form question as strict JSON.",
        _role(
            who="You are the Question Author.",
            goal="Write a single, complete question object for a form.",
        ),
        _bullets(
            "INPUTS:",
            [
                "`question_spec`: what the question should ask.",
                "`question_type`: the questionType to use.",
                "`form_title`: title of the form the question belongs to.",
                "`allowed_input_types_json`: allowed display.inputType values for this questionType.",
            ],
        ),
        _bullets("QUESTION SHAPE:", _QUESTION_SHAPE_RULES),
        _bullets(
            "HARD RULES:",
            [
                "Output ONLY one JSON object in `question_json` (no prose, no markdown, no code fences).",
                "Copy must be user-facing.",
            ],
        ),
    )


def build_question_repair_prompt() -> str:
    return _lines(
        "Fix a form question that failed validation.",
        _role(
            who="You are the Question Fixer.",
            goal="Return the same question with every listed validation error resolved.",
        ),
        _bullets(
            "INPUTS:",
            [
                "`question_json`: the offending question payload.",
                "`validation_errors`: the errors it produced.",
                "`question_type`: the questionType it must keep.",
            ],
        ),
        _bullets("QUESTION SHAPE:", _QUESTION_SHAPE_RULES),
        _bullets(
            "HARD RULES:",
            [
                "Output ONLY one JSON object in `repaired_question_json`.",
                "Keep the `id`, `title` and intent of the original question.",
            ],
        ),
    )


def build_tool_selector_prompt() -> str:
    return _lines(
        "Drive one step of a form-building assistant.",
        _role(
            who="You are FormCraft, an assistant that builds and edits forms through tools.",
            goal="Choose at most one tool to call for this step, or reply to the user when no tool is needed.",
        ),
        _bullets(
            "INPUTS:",
            [
                "`conversation_json`: the chat so far as `[{role, content}]`.",
                "`form_context_json`: summary of the current form (may have no questions yet).",
                "`tool_results_json`: results of tools already called this turn, in order.",
                "`tools_json`: available tools with their descriptions and argument shapes.",
            ],
        ),
        _bullets(
            "HARD RULES:",
            [
                "`tool_name` MUST be one of the names in `tools_json`, or `none` to finish with a reply.",
                "`tool_args_json` MUST be a JSON object matching the chosen tool's arguments (`{}` when `tool_name` is `none`).",
                "Use createForm when the form has no questions yet; use updateForm only when it already has content.",
                "When a tool result has `success: false`, decide whether to retry, ask the user, or explain the failure.",
                "Do not call the same tool twice with the same arguments.",
                "`reply` is a short user-facing message describing what happened; write it when `tool_name` is `none`.",
            ],
        ),
    )


__all__ = [
    "build_form_plan_prompt",
    "build_question_prompt",
    "build_question_repair_prompt",
    "build_tool_selector_prompt",
]
