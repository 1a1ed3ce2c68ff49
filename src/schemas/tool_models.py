"""
Arguments and results for the agent's tools.

Arguments arrive as JSON produced by the tool-selector program; they are parsed
leniently (extra keys allowed) and validated here before a tool runs.
"""

from __future__ import annotations

from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class _Base(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)


class CreateFormArgs(_Base):
    prompt: str = Field(min_length=1)


class AddQuestionAction(_Base):
    action: Literal["add"]
    question_data: Dict[str, Any] = Field(alias="questionData")


class UpdateQuestionAction(_Base):
    action: Literal["update"]
    question_id: str = Field(alias="questionId", min_length=1)
    question_data: Dict[str, Any] = Field(default_factory=dict, alias="questionData")


class RemoveQuestionAction(_Base):
    action: Literal["remove"]
    question_id: str = Field(alias="questionId", min_length=1)


QuestionAction = Annotated[
    Union[AddQuestionAction, UpdateQuestionAction, RemoveQuestionAction],
    Field(discriminator="action"),
]


class FormUpdates(_Base):
    title: Optional[str] = None
    description: Optional[str] = None
    questions: List[QuestionAction] = Field(default_factory=list)
    settings: Optional[Dict[str, Any]] = None


class UpdateFormArgs(_Base):
    updates: FormUpdates


class QueryDocsArgs(_Base):
    query: str = Field(min_length=1)
    context: Optional[str] = None


class ShowConfigButtonArgs(_Base):
    button_type: Literal["slack", "webhook", "email", "integration"] = Field(alias="buttonType")
    form_id: Optional[str] = Field(default=None, alias="formId")
    metadata: Dict[str, Any] = Field(default_factory=dict)


class GetFormContextArgs(_Base):
    form_id: Optional[str] = Field(default=None, alias="formId")


class ToolResult(_Base):
    """
    Structured outcome of one tool call, fed back to the tool-selector program.

    Failures never raise out of a tool: they become `success=False` with `error` set.
    """

    tool: str
    success: bool
    message: Optional[str] = None
    error: Optional[str] = None
    data: Dict[str, Any] = Field(default_factory=dict)

    def for_model(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


__all__ = [
    "AddQuestionAction",
    "CreateFormArgs",
    "FormUpdates",
    "GetFormContextArgs",
    "QueryDocsArgs",
    "RemoveQuestionAction",
    "ShowConfigButtonArgs",
    "ToolResult",
    "UpdateFormArgs",
    "UpdateQuestionAction",
]
