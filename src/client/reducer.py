"""
Client-side projection of an agent event feed.

`reduce()` is pure: it never mutates the incoming state and returns a new
`AgentSessionState`. Dispatch is by event model class; an event class without a branch
raises instead of being silently ignored.
"""

from __future__ import annotations

from typing import Any, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from schemas.agent_events import (
    PLANNING_MARKER,
    AgentState,
    ErrorData,
    ErrorEvent,
    ProgressData,
    ProgressEvent,
    StateSnapshotEvent,
    SystemEvent,
    UIEvent,
    parse_agent_event,
)
from schemas.questions import FormSnapshot

ConnectionStatus = Literal["idle", "connecting-same-form", "connecting-new-form"]


class AgentSessionState(BaseModel):
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    form_id: Optional[str] = None
    current_form: Optional[FormSnapshot] = None
    agent_state: Optional[AgentState] = None
    events_log: List[Any] = Field(default_factory=list)
    progress: Optional[ProgressData] = None
    error_details: Optional[ErrorData] = None
    last_system_event: Optional[SystemEvent] = None
    last_ui_event: Optional[UIEvent] = None
    total_task_count: Optional[int] = None
    completed_task_count: int = 0
    question_task_count: Optional[int] = None
    initial_prompt: Optional[str] = None
    connection_status: ConnectionStatus = "idle"

    @property
    def is_failed(self) -> bool:
        return self.agent_state is not None and self.agent_state.status == "FAILED"

    @property
    def retry_input(self) -> Any:
        """Original user input to offer as a retry when the run failed."""
        if self.is_failed and self.agent_state is not None:
            return self.agent_state.original_input
        return None


def initial_state() -> AgentSessionState:
    return AgentSessionState()


def initialize_connection(state: AgentSessionState, form_id: str) -> AgentSessionState:
    """
    Bind the session to `form_id`.

    Accumulated state is dropped when the session was bound to another form, or when the
    cached form belongs to another id; otherwise only the connection status changes.
    """
    bound_elsewhere = state.form_id is not None and state.form_id != form_id
    stale_form = state.current_form is not None and state.current_form.id != form_id
    if bound_elsewhere or stale_form:
        return AgentSessionState(form_id=form_id, connection_status="connecting-new-form")
    return state.model_copy(update={"form_id": form_id, "connection_status": "connecting-same-form"})


def reset(state: AgentSessionState, *, keep_form_id: bool = False) -> AgentSessionState:
    return AgentSessionState(form_id=state.form_id if keep_form_id else None)


def set_initial_prompt(state: AgentSessionState, prompt: Optional[str]) -> AgentSessionState:
    return state.model_copy(update={"initial_prompt": prompt})


def _append_log(log: List[Any], event: Any) -> List[Any]:
    # Replayed deliveries carry the same event id; the log keeps one entry per event.
    if any(getattr(e, "id", None) == event.id for e in log):
        return log
    return [*log, event]


def reduce(state: AgentSessionState, event: Any) -> AgentSessionState:
    if isinstance(event, dict):
        event = parse_agent_event(event)

    update: dict = {"events_log": _append_log(state.events_log, event)}

    if isinstance(event, StateSnapshotEvent):
        if event.form_id == state.form_id:
            update["current_form"] = event.data.form
            update["agent_state"] = event.data.agent_state
    elif isinstance(event, ProgressEvent):
        update["progress"] = event.data
        # Not deduplicated by taskId: a replayed task_completed counts twice.
        if event.type == "task_completed":
            update["completed_task_count"] = state.completed_task_count + 1
    elif isinstance(event, ErrorEvent):
        update["error_details"] = event.data
    elif isinstance(event, SystemEvent):
        update["last_system_event"] = event
        if event.type == "agent_initialized":
            update["total_task_count"] = None
            update["completed_task_count"] = 0
            update["question_task_count"] = None
        elif event.type == "agent_warning":
            details = event.data.details or {}
            if details.get("event_source") == PLANNING_MARKER:
                if isinstance(details.get("taskCount"), int):
                    update["total_task_count"] = details["taskCount"]
                if isinstance(details.get("questionTaskCount"), int):
                    update["question_task_count"] = details["questionTaskCount"]
    elif isinstance(event, UIEvent):
        update["last_ui_event"] = event
    else:
        raise TypeError(f"Unhandled agent event: {type(event).__name__}")

    return state.model_copy(update=update)


def reduce_all(state: AgentSessionState, events: List[Any]) -> AgentSessionState:
    for event in events:
        state = reduce(state, event)
    return state


__all__ = [
    "AgentSessionState",
    "ConnectionStatus",
    "initial_state",
    "initialize_connection",
    "reduce",
    "reduce_all",
    "reset",
    "set_initial_prompt",
]
