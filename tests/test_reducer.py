from client.reducer import (
    AgentSessionState,
    initialize_connection,
    reduce,
    reduce_all,
    reset,
    set_initial_prompt,
)
from schemas.agent_events import (
    PLANNING_MARKER,
    EventSequencer,
    create_agent_event,
    event_to_wire,
)


def _snapshot(seq: EventSequencer, form_id: str, *, title: str = "Survey", status: str = "RUNNING", complete=False):
    return create_agent_event(
        "state_snapshot",
        "state",
        {
            "form": {"id": form_id, "version_id": "v1", "title": title, "questions": [], "settings": {}},
            "agentState": {"formId": form_id, "userId": "u1", "status": status, "originalInput": "make a survey"},
            "isComplete": complete,
        },
        form_id,
        "u1",
        seq.next(),
    )


def _progress(seq: EventSequencer, form_id: str, type_: str, task_id: str = "t1"):
    return create_agent_event(type_, "progress", {"taskId": task_id}, form_id, "u1", seq.next())


def _bound(form_id: str) -> AgentSessionState:
    return initialize_connection(AgentSessionState(), form_id)


def test_snapshot_for_bound_form_replaces_current_form():
    seq = EventSequencer()
    state = reduce(_bound("A"), _snapshot(seq, "A", title="First"))
    state = reduce(state, _snapshot(seq, "A", title="Second"))
    assert state.current_form.title == "Second"
    assert state.agent_state.status == "RUNNING"


def test_snapshot_for_other_form_is_logged_but_ignored():
    seq = EventSequencer()
    state = reduce(_bound("A"), _snapshot(seq, "B", title="Other"))
    assert state.current_form is None
    assert len(state.events_log) == 1


def test_reduce_does_not_mutate_previous_state():
    seq = EventSequencer()
    before = _bound("A")
    after = reduce(before, _snapshot(seq, "A"))
    assert before.current_form is None
    assert before.events_log == []
    assert after is not before


def test_replayed_snapshot_is_idempotent():
    seq = EventSequencer()
    event = _snapshot(seq, "A", title="Once")
    once = reduce(_bound("A"), event)
    twice = reduce(once, event)
    assert twice.current_form == once.current_form
    assert twice.agent_state == once.agent_state
    assert len(twice.events_log) == 1


def test_task_completed_increments_and_is_not_deduplicated():
    seq = EventSequencer()
    done = _progress(seq, "A", "task_completed")
    state = reduce_all(_bound("A"), [_progress(seq, "A", "task_started"), done, done])
    assert state.completed_task_count == 2
    assert state.progress.task_id == "t1"


def test_agent_initialized_resets_counters():
    seq = EventSequencer()
    state = reduce_all(
        _bound("A"),
        [
            _progress(seq, "A", "task_completed"),
            create_agent_event("agent_initialized", "system", {"message": "hi"}, "A", "u1", seq.next()),
        ],
    )
    assert state.completed_task_count == 0
    assert state.total_task_count is None
    assert state.question_task_count is None


def test_planning_warning_sets_task_totals():
    seq = EventSequencer()
    warning = create_agent_event(
        "agent_warning",
        "system",
        {"message": "tasks", "details": {"taskCount": 6, "questionTaskCount": 4, "event_source": PLANNING_MARKER}},
        "A",
        "u1",
        seq.next(),
    )
    state = reduce(_bound("A"), warning)
    assert state.total_task_count == 6
    assert state.question_task_count == 4
    assert state.last_system_event.type == "agent_warning"


def test_other_warnings_leave_totals_alone():
    seq = EventSequencer()
    warning = create_agent_event(
        "agent_warning", "system", {"message": "x", "details": {"taskCount": 9}}, "A", "u1", seq.next()
    )
    assert reduce(_bound("A"), warning).total_task_count is None


def test_error_event_records_details():
    seq = EventSequencer()
    err = create_agent_event("tool_error", "error", {"message": "boom", "recoverable": True}, "A", "u1", seq.next())
    state = reduce(_bound("A"), err)
    assert state.error_details.message == "boom"


def test_failed_snapshot_exposes_retry_input():
    seq = EventSequencer()
    state = reduce(_bound("A"), _snapshot(seq, "A", status="FAILED", complete=True))
    assert state.is_failed
    assert state.retry_input == "make a survey"


def test_reduce_accepts_wire_dicts():
    seq = EventSequencer()
    wire = event_to_wire(_snapshot(seq, "A", title="From wire"))
    assert reduce(_bound("A"), wire).current_form.title == "From wire"


def test_initialize_connection_same_form_keeps_state():
    seq = EventSequencer()
    state = reduce(_bound("A"), _snapshot(seq, "A"))
    again = initialize_connection(state, "A")
    assert again.connection_status == "connecting-same-form"
    assert again.current_form == state.current_form


def test_initialize_connection_new_form_resets_state():
    seq = EventSequencer()
    state = reduce(_bound("A"), _snapshot(seq, "A"))
    moved = initialize_connection(state, "B")
    assert moved.connection_status == "connecting-new-form"
    assert moved.form_id == "B"
    assert moved.current_form is None
    assert moved.events_log == []


def test_reset_and_initial_prompt():
    state = set_initial_prompt(_bound("A"), "a contact form")
    assert state.initial_prompt == "a contact form"
    assert reset(state, keep_form_id=True).form_id == "A"
    assert reset(state).form_id is None


def test_sessions_are_isolated():
    seq_a, seq_b = EventSequencer(), EventSequencer()
    a = reduce(_bound("A"), _snapshot(seq_a, "A", title="Form A"))
    b = reduce(_bound("B"), _snapshot(seq_b, "B", title="Form B"))
    a = reduce(a, _snapshot(seq_b, "B", title="Leaked"))
    assert a.current_form.title == "Form A"
    assert b.current_form.title == "Form B"


def test_sequencer_is_strictly_increasing():
    seq = EventSequencer()
    values = [seq.next() for _ in range(50)]
    assert values == sorted(set(values))
    assert seq.last == 49
