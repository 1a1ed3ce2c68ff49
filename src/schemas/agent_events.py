"""
Agent event taxonomy.

Every event travels as one JSON object:
  {id, category, type, timestamp, formId, userId, sequence, data}

`category` is the discriminator; `type` is category-specific. Consumers match on
`AgentEvent` exhaustively (see `client.reducer`).
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Annotated, Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from schemas.questions import FormSnapshot

AgentStatus = Literal["INITIALIZING", "RUNNING", "COMPLETED", "FAILED"]

# `system/agent_warning` events carrying this marker report the authoritative task total.
PLANNING_MARKER = "metadata_generator_task_list"


class _Base(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)


class FormMetadata(_Base):
    title: str = ""
    description: str = ""


class ErrorDetails(_Base):
    node: str = ""
    message: str = ""


class AgentState(_Base):
    form_id: str = Field(alias="formId")
    user_id: str = Field(default="", alias="userId")
    status: AgentStatus = "INITIALIZING"
    original_input: Any = Field(default=None, alias="originalInput")
    form_metadata: Optional[FormMetadata] = Field(default=None, alias="formMetadata")
    error_details: Optional[ErrorDetails] = Field(default=None, alias="errorDetails")


class StateSnapshotData(_Base):
    form: FormSnapshot
    agent_state: AgentState = Field(alias="agentState")
    is_complete: bool = Field(default=False, alias="isComplete")


class ProgressData(_Base):
    task_id: Optional[str] = Field(default=None, alias="taskId")
    task_type: Optional[str] = Field(default=None, alias="taskType")
    current: Optional[int] = None
    total: Optional[int] = None
    message: Optional[str] = None


class ErrorData(_Base):
    message: str
    details: Any = None
    recoverable: bool = False


class SystemData(_Base):
    message: str = ""
    details: Optional[Dict[str, Any]] = None


class UIData(_Base):
    action: str = ""
    button_type: Optional[str] = Field(default=None, alias="buttonType")
    message: Optional[str] = None


class _EventBase(_Base):
    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    timestamp: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    form_id: str = Field(alias="formId")
    user_id: str = Field(default="", alias="userId")
    sequence: int = Field(ge=0)


class StateSnapshotEvent(_EventBase):
    category: Literal["state"] = "state"
    type: Literal["state_snapshot"] = "state_snapshot"
    data: StateSnapshotData


class ProgressEvent(_EventBase):
    category: Literal["progress"] = "progress"
    type: Literal["task_started", "task_completed", "task_failed"]
    data: ProgressData = Field(default_factory=ProgressData)


class ErrorEvent(_EventBase):
    category: Literal["error"] = "error"
    type: Literal["agent_error", "validation_error", "tool_error"] = "agent_error"
    data: ErrorData


class SystemEvent(_EventBase):
    category: Literal["system"] = "system"
    type: Literal["agent_initialized", "agent_warning", "agent_finalized"]
    data: SystemData = Field(default_factory=SystemData)


class UIEvent(_EventBase):
    category: Literal["ui"] = "ui"
    type: Literal["show_config_button", "ui_action"] = "ui_action"
    data: UIData = Field(default_factory=UIData)


AgentEvent = Annotated[
    Union[StateSnapshotEvent, ProgressEvent, ErrorEvent, SystemEvent, UIEvent],
    Field(discriminator="category"),
]

_EVENT_ADAPTER: TypeAdapter = TypeAdapter(AgentEvent)

_CATEGORY_MODELS = {
    "state": StateSnapshotEvent,
    "progress": ProgressEvent,
    "error": ErrorEvent,
    "system": SystemEvent,
    "ui": UIEvent,
}


def parse_agent_event(obj: Any) -> Any:
    """Validate a wire object (dict) into the matching event model."""
    return _EVENT_ADAPTER.validate_python(obj)


def event_to_wire(event: Any) -> Dict[str, Any]:
    return event.model_dump(by_alias=True, mode="json", exclude_none=True)


def create_agent_event(
    type: str,
    category: str,
    data: Any,
    form_id: str,
    user_id: str,
    sequence: int,
) -> Any:
    model = _CATEGORY_MODELS.get(category)
    if model is None:
        raise ValueError(f"Unknown event category: {category}")
    return model.model_validate(
        {"type": type, "data": data, "formId": form_id, "userId": user_id, "sequence": int(sequence)}
    )


class EventSequencer:
    """
    Per-session sequence source. `next()` is strictly increasing.
    """

    def __init__(self, start: int = 0) -> None:
        self._next = int(start)

    @property
    def last(self) -> int:
        return self._next - 1

    def next(self) -> int:
        value = self._next
        self._next += 1
        return value


__all__ = [
    "PLANNING_MARKER",
    "AgentEvent",
    "AgentState",
    "AgentStatus",
    "ErrorEvent",
    "EventSequencer",
    "FormMetadata",
    "ProgressEvent",
    "StateSnapshotEvent",
    "SystemEvent",
    "UIEvent",
    "create_agent_event",
    "event_to_wire",
    "parse_agent_event",
]
