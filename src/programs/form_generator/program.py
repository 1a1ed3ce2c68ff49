from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

import dspy

from programs.form_agent.lm import make_lm
from programs.form_generator.signatures import GenerateQuestion, PlanForm, RepairQuestion, SelectTool


class FormPlannerProgram(dspy.Module):
    """
    Thin DSPy wrapper for the planning call (title, description, question list).
    """

    def __init__(self) -> None:
        super().__init__()
        self.prog = dspy.Predict(PlanForm)

    def forward(self, *, user_prompt: str, question_types: list[str]):  # type: ignore[override]
        return self.prog(user_prompt=user_prompt, question_types=question_types)


class QuestionGeneratorProgram(dspy.Module):
    def __init__(self) -> None:
        super().__init__()
        self.prog = dspy.Predict(GenerateQuestion)

    def forward(  # type: ignore[override]
        self,
        *,
        question_spec: str,
        question_type: str,
        form_title: str,
        allowed_input_types_json: str,
    ):
        return self.prog(
            question_spec=question_spec,
            question_type=question_type,
            form_title=form_title,
            allowed_input_types_json=allowed_input_types_json,
        )


class QuestionRepairProgram(dspy.Module):
    def __init__(self) -> None:
        super().__init__()
        self.prog = dspy.Predict(RepairQuestion)

    def forward(self, *, question_json: str, validation_errors: str, question_type: str):  # type: ignore[override]
        return self.prog(
            question_json=question_json,
            validation_errors=validation_errors,
            question_type=question_type,
        )


class ToolSelectorProgram(dspy.Module):
    def __init__(self) -> None:
        super().__init__()
        self.prog = dspy.Predict(SelectTool)

    def forward(  # type: ignore[override]
        self,
        *,
        conversation_json: str,
        form_context_json: str,
        tool_results_json: str,
        tools_json: str,
    ):
        return self.prog(
            conversation_json=conversation_json,
            form_context_json=form_context_json,
            tool_results_json=tool_results_json,
            tools_json=tools_json,
        )


@dataclass
class BoundProgram:
    """A program plus the LM it runs against (None = whatever dspy.settings holds)."""

    program: Any
    lm: Any = None

    def __call__(self, **kwargs: Any) -> Any:
        if self.lm is None:
            return self.program(**kwargs)
        with dspy.context(lm=self.lm):
            return self.program(**kwargs)


@dataclass
class AgentPrograms:
    planner: BoundProgram
    question_generator: BoundProgram
    question_repairer: BoundProgram
    tool_selector: BoundProgram


def build_agent_programs() -> Optional[AgentPrograms]:
    """
    Build every program with its module-specific LM, or None when no provider is configured.

    The conversational turn runs at temperature 0.7 with a 4000-token cap; the ancillary
    generation calls share the `DSPY_LLM_TIMEOUT_SEC` limit.
    """
    selector_lm = make_lm(module_env_prefix="DSPY_TOOL_SELECTOR", temperature=0.7, max_tokens=4000, ancillary=False)
    planner_lm = make_lm(module_env_prefix="DSPY_PLANNER", temperature=0.7, max_tokens=2000)
    question_lm = make_lm(module_env_prefix="DSPY_QUESTION", temperature=0.4, max_tokens=1500)
    repair_lm = make_lm(module_env_prefix="DSPY_REPAIR", temperature=0.0, max_tokens=1500)
    if selector_lm is None or planner_lm is None or question_lm is None or repair_lm is None:
        return None
    return AgentPrograms(
        planner=BoundProgram(FormPlannerProgram(), planner_lm),
        question_generator=BoundProgram(QuestionGeneratorProgram(), question_lm),
        question_repairer=BoundProgram(QuestionRepairProgram(), repair_lm),
        tool_selector=BoundProgram(ToolSelectorProgram(), selector_lm),
    )


__all__ = [
    "AgentPrograms",
    "BoundProgram",
    "FormPlannerProgram",
    "QuestionGeneratorProgram",
    "QuestionRepairProgram",
    "ToolSelectorProgram",
    "build_agent_programs",
]
