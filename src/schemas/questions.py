"""
Question / form definitions.

Questions are a tagged union keyed by `questionType`. Structural invariants that
span fields (allowed input types, submission behavior, option-count controls) live
in `programs.form_schema.validation`, so these models stay permissive enough to
hold model output that still needs repair.
"""

from __future__ import annotations

from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator


QuestionType = Literal[
    "singleChoice",
    "multipleChoice",
    "text",
    "date",
    "rating",
    "linearScale",
    "likertScale",
    "address",
    "ranking",
    "fileUpload",
]

InputType = Literal[
    "checkbox",
    "radio",
    "dropdown",
    "multiSelectDropdown",
    "text",
    "textarea",
    "email",
    "url",
    "tel",
    "country",
    "number",
    "password",
    "date",
    "dateRange",
    "star",
    "linearScale",
    "file",
    "addressBlock",
    "rankOrder",
    "likertScale",
]

SubmissionBehavior = Literal["autoAnswer", "manualAnswer", "manualUnclear"]

QUESTION_TYPES: List[str] = list(QuestionType.__args__)  # type: ignore[attr-defined]


class _Base(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)


class Option(_Base):
    value: str
    label: str
    score: Optional[float] = None


class ValidationRule(_Base):
    value: Union[bool, int, float, str, List[str]]
    message: Optional[str] = None
    original_text: Optional[str] = Field(default=None, alias="originalText")


class QuestionValidations(_Base):
    required: Optional[ValidationRule] = None
    min_length: Optional[ValidationRule] = Field(default=None, alias="minLength")
    max_length: Optional[ValidationRule] = Field(default=None, alias="maxLength")
    pattern: Optional[ValidationRule] = None
    min_selections: Optional[ValidationRule] = Field(default=None, alias="minSelections")
    max_selections: Optional[ValidationRule] = Field(default=None, alias="maxSelections")
    min_date: Optional[ValidationRule] = Field(default=None, alias="minDate")
    max_date: Optional[ValidationRule] = Field(default=None, alias="maxDate")
    max_size: Optional[ValidationRule] = Field(default=None, alias="maxSize")
    allowed_types: Optional[ValidationRule] = Field(default=None, alias="allowedTypes")
    max_files: Optional[ValidationRule] = Field(default=None, alias="maxFiles")


class QuestionDisplay(_Base):
    input_type: InputType = Field(alias="inputType")
    show_title: bool = Field(default=True, alias="showTitle")
    show_description: bool = Field(default=True, alias="showDescription")


class ConditionalLogic(_Base):
    prompt: str
    jsonata: str


class Address(_Base):
    street1: Optional[str] = None
    street2: Optional[str] = None
    city: Optional[str] = None
    state_province: Optional[str] = Field(default=None, alias="stateProvince")
    postal_code: Optional[str] = Field(default=None, alias="postalCode")
    country: Optional[str] = None


class _QuestionBase(_Base):
    type: Literal["question"] = "question"
    id: str = Field(min_length=1)
    question_no: int = Field(default=0, alias="questionNo")
    title: str
    description: Optional[str] = None
    validations: QuestionValidations = Field(default_factory=QuestionValidations)
    display: QuestionDisplay
    conditional_logic: Optional[ConditionalLogic] = Field(default=None, alias="conditionalLogic")
    default_value: Optional[Union[str, float, List[str], Address]] = Field(default=None, alias="defaultValue")
    submission_behavior: SubmissionBehavior = Field(alias="submissionBehavior")
    readable_validations: Optional[List[str]] = Field(default=None, alias="readableValidations")
    readable_conditional_logic: Optional[List[str]] = Field(default=None, alias="readableConditionalLogic")


class ChoiceQuestion(_QuestionBase):
    question_type: Literal["singleChoice", "multipleChoice"] = Field(alias="questionType")
    options: List[Option] = Field(min_length=1)


class RankingQuestion(_QuestionBase):
    question_type: Literal["ranking"] = Field(alias="questionType")
    options: List[Option] = Field(min_length=1)
    readable_ranking_config: Optional[str] = Field(default=None, alias="readableRankingConfig")


class RatingConfig(_Base):
    min: int = 1
    max: int = Field(gt=0)
    step: int = Field(default=1, gt=0)
    min_label: Optional[str] = Field(default=None, alias="minLabel")
    max_label: Optional[str] = Field(default=None, alias="maxLabel")

    @model_validator(mode="after")
    def _max_above_min(self) -> "RatingConfig":
        if self.max <= self.min:
            raise ValueError("Rating 'max' must be greater than 'min'.")
        return self


class RatingQuestion(_QuestionBase):
    question_type: Literal["rating"] = Field(alias="questionType")
    rating_config: RatingConfig = Field(alias="ratingConfig")
    readable_rating_config: Optional[str] = Field(default=None, alias="readableRatingConfig")


class LinearScaleConfig(_Base):
    start: int
    end: int
    step: int = Field(default=1, gt=0)
    start_label: Optional[str] = Field(default=None, alias="startLabel")
    end_label: Optional[str] = Field(default=None, alias="endLabel")

    @model_validator(mode="after")
    def _end_above_start(self) -> "LinearScaleConfig":
        if self.end <= self.start:
            raise ValueError("Linear scale 'end' must be greater than 'start'.")
        return self


class LinearScaleQuestion(_QuestionBase):
    question_type: Literal["linearScale"] = Field(alias="questionType")
    linear_scale_config: LinearScaleConfig = Field(alias="linearScaleConfig")


class LikertScaleQuestion(_QuestionBase):
    question_type: Literal["likertScale"] = Field(alias="questionType")
    options: List[str] = Field(min_length=2, max_length=7)
    readable_likert_config: Optional[str] = Field(default=None, alias="readableLikertConfig")


class SimpleQuestion(_QuestionBase):
    question_type: Literal["text", "date", "address", "fileUpload"] = Field(alias="questionType")

    @model_validator(mode="after")
    def _address_default(self) -> "SimpleQuestion":
        if self.question_type == "address" and self.default_value not in (None, "") and not isinstance(
            self.default_value, Address
        ):
            raise ValueError("Default value for address must be a valid Address object.")
        return self


Question = Annotated[
    Union[ChoiceQuestion, RankingQuestion, RatingQuestion, LinearScaleQuestion, LikertScaleQuestion, SimpleQuestion],
    Field(discriminator="question_type"),
]


class AdditionalFields(_Base):
    query_parameter: List[str] = Field(default_factory=list, alias="queryParamater")
    computed_from_responses: List[Dict[str, Any]] = Field(default_factory=list, alias="computedFromResponses")


class FormSettings(_Base):
    result_page_generation_prompt: Optional[str] = Field(default=None, alias="resultPageGenerationPrompt")
    journey_script: Optional[str] = Field(default=None, alias="journeyScript")
    additional_fields: Optional[AdditionalFields] = Field(default=None, alias="additionalFields")
    redirect_on_submission_url: Optional[str] = Field(default=None, alias="redirectOnSubmissionUrl")
    submission_notification_email: Optional[str] = Field(default=None, alias="submissionNotificationEmail")
    integrations: Optional[Dict[str, Any]] = None
    branching: Optional[Dict[str, Any]] = None


class FormSnapshot(_Base):
    """
    Full form as carried by `state_snapshot` events and returned by `GET /forms/{id}`.

    `questions` stays as plain dicts: snapshots are emitted mid-generation and must be
    able to carry questions that are still being repaired.
    """

    id: str = Field(min_length=1)
    version_id: str = Field(min_length=1)
    short_id: Optional[str] = None
    title: str = "Untitled Form"
    description: Optional[str] = None
    questions: List[Dict[str, Any]] = Field(default_factory=list)
    settings: Dict[str, Any] = Field(default_factory=dict)
    current_draft_version_id: Optional[str] = None
    current_published_version_id: Optional[str] = None


class FormVersion(_Base):
    version_id: str
    form_id: str
    status: Literal["draft", "published"] = "draft"
    title: str = "Untitled Form"
    description: Optional[str] = None
    questions: List[Dict[str, Any]] = Field(default_factory=list)
    settings: Dict[str, Any] = Field(default_factory=dict)


__all__ = [
    "QUESTION_TYPES",
    "Address",
    "ChoiceQuestion",
    "FormSettings",
    "FormSnapshot",
    "FormVersion",
    "InputType",
    "LikertScaleQuestion",
    "LinearScaleQuestion",
    "Option",
    "Question",
    "QuestionType",
    "RankingQuestion",
    "RatingQuestion",
    "SimpleQuestion",
    "SubmissionBehavior",
]
