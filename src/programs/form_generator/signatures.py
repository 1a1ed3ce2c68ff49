from __future__ import annotations

import dspy

from programs.form_generator.prompts import (
    build_form_plan_prompt,
    build_question_prompt,
    build_question_repair_prompt,
    build_tool_selector_prompt,
)


class PlanForm(dspy.Signature):
    user_prompt: str = dspy.InputField(desc="The user's request for the form.")
    question_types: list[str] = dspy.InputField(desc="Allowed questionType values.")

    title: str = dspy.OutputField(desc="Form title.")
    description: str = dspy.OutputField(desc="One or two sentence form description.")
    question_details_json: str = dspy.OutputField(
        desc='JSON array of {"question_specs": str, "type": str}. Output ONLY JSON.'
    )
    journey_script: str = dspy.OutputField(desc="Short markdown outline of the respondent journey.")


class GenerateQuestion(dspy.Signature):
    question_spec: str = dspy.InputField(desc="What the question should ask.")
    question_type: str = dspy.InputField(desc="questionType to use.")
    form_title: str = dspy.InputField(desc="Title of the form.")
    allowed_input_types_json: str = dspy.InputField(desc="JSON array of allowed display.inputType values.")

    question_json: str = dspy.OutputField(desc="One question as a JSON object. Output ONLY JSON.")


class RepairQuestion(dspy.Signature):
    question_json: str = dspy.InputField(desc="The question that failed validation, as JSON.")
    validation_errors: str = dspy.InputField(desc="Validation errors, one per line.")
    question_type: str = dspy.InputField(desc="questionType the question must keep.")

    repaired_question_json: str = dspy.OutputField(desc="The fixed question as a JSON object. Output ONLY JSON.")


class SelectTool(dspy.Signature):
    conversation_json: str = dspy.InputField(desc="Chat history as JSON [{role, content}].")
    form_context_json: str = dspy.InputField(desc="Current form summary as JSON.")
    tool_results_json: str = dspy.InputField(desc="JSON array of tool results from earlier steps in this turn.")
    tools_json: str = dspy.InputField(desc="JSON array of available tools.")

    tool_name: str = dspy.OutputField(desc="Name of the tool to call, or `none`.")
    tool_args_json: str = dspy.OutputField(desc="JSON object with the tool arguments.")
    reply: str = dspy.OutputField(desc="User-facing message.")


PlanForm.__doc__ = build_form_plan_prompt()
GenerateQuestion.__doc__ = build_question_prompt()
RepairQuestion.__doc__ = build_question_repair_prompt()
SelectTool.__doc__ = build_tool_selector_prompt()


__all__ = ["GenerateQuestion", "PlanForm", "RepairQuestion", "SelectTool"]
