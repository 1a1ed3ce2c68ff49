"""
`programs.form_generator`

DSPy programs used by the form agent: planning, per-question generation, question repair
and per-step tool selection.
"""

from programs.form_generator.program import (
    AgentPrograms,
    BoundProgram,
    FormPlannerProgram,
    QuestionGeneratorProgram,
    QuestionRepairProgram,
    ToolSelectorProgram,
    build_agent_programs,
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
