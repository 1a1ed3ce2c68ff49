import asyncio
import dataclasses
import json
from types import SimpleNamespace

from programs.form_agent.forms import ChatService, FormService
from programs.form_agent.orchestrator import FALLBACK_ASSISTANT_MESSAGE, FormAgentOrchestrator, parse_decision
from programs.form_agent.tools import TOOLS
from programs.form_agent.transport import EventChannel, pump
from programs.form_generator.program import AgentPrograms

FORM_ID = "form_test000001"
USER_ID = "user_1"


class ScriptedSelector:
    def __init__(self, *decisions):
        self.decisions = list(decisions)
        self.calls = []

    def __call__(self, **kwargs):
        self.calls.append(kwargs)
        name, args, reply = self.decisions.pop(0) if self.decisions else ("none", {}, "")
        return SimpleNamespace(tool_name=name, tool_args_json=json.dumps(args), reply=reply)


def _planner(**kwargs):
    return SimpleNamespace(
        title="Customer Feedback",
        description="Tell us how we did.",
        question_details_json=json.dumps(
            [
                {"question_specs": "Overall rating from 1 to 5", "type": "rating"},
                {"question_specs": "Which features do you use? five options", "type": "multipleChoice"},
            ]
        ),
        journey_script="Thank the user warmly.",
    )


def _question_generator(*, question_type, **kwargs):
    if question_type == "rating":
        q = {
            "title": "How would you rate us?",
            "display": {"inputType": "star"},
            "submissionBehavior": "autoAnswer",
            "ratingConfig": {"min": 1, "max": 5},
        }
    else:
        q = {
            "title": "Which features do you use?",
            "display": {"inputType": "checkbox"},
            "submissionBehavior": "autoAnswer",
            "options": [{"value": f"f{i}", "label": f"Feature {i}"} for i in range(5)],
        }
    return SimpleNamespace(question_json=json.dumps(q))


def _repairer(**kwargs):
    raise AssertionError("repair program should not be needed")


def _programs(selector) -> AgentPrograms:
    return AgentPrograms(
        planner=_planner,
        question_generator=_question_generator,
        question_repairer=_repairer,
        tool_selector=selector,
    )


def _run(orchestrator: FormAgentOrchestrator, *, channel: EventChannel = None):
    async def run():
        ch = channel or EventChannel()
        holder = {}

        async def produce():
            holder["outcome"] = await orchestrator.run_turn(
                form_id=FORM_ID,
                user_id=USER_ID,
                messages=[{"role": "user", "content": "Make a customer feedback survey"}],
                channel=ch,
            )

        task = asyncio.create_task(pump(ch, produce()))
        frames = [f async for f in ch]
        await task
        return holder["outcome"], frames

    return asyncio.run(run())


def _events(frames, type_=None):
    out = [f["event"] for f in frames if f["kind"] == "agent_event"]
    return [e for e in out if type_ is None or e["type"] == type_]


def _assistant_messages(repo):
    return [m["content"] for m in ChatService(repo).get_chat_history(FORM_ID) if m["role"] == "assistant"]


def test_create_form_turn_streams_progress_and_persists_draft(_memory_store):
    repo = _memory_store
    FormService(repo).ensure_form_exists(FORM_ID, USER_ID)
    selector = ScriptedSelector(
        ("createForm", {"prompt": "customer feedback survey"}, ""),
        ("none", {}, "Your feedback form is ready."),
    )
    outcome, frames = _run(FormAgentOrchestrator(repo=repo, programs=_programs(selector)))

    assert outcome.success is True
    assert outcome.final_status == "COMPLETED"
    assert frames[0]["kind"] == "chat_initialized"
    assert frames[-1] == {"kind": "chat_completed", "formId": FORM_ID, "success": True}
    assert {"kind": "text", "text": "Your feedback form is ready."} in frames

    sequences = [e["sequence"] for e in _events(frames)]
    assert sequences == sorted(sequences) and len(set(sequences)) == len(sequences)

    warning = _events(frames, "agent_warning")[0]
    assert warning["data"]["details"] == {
        "taskCount": 4,
        "questionTaskCount": 2,
        "event_source": "metadata_generator_task_list",
    }

    final = [e for e in _events(frames, "state_snapshot") if e["data"]["isComplete"]][-1]
    assert final["data"]["agentState"]["status"] == "COMPLETED"
    questions = final["data"]["form"]["questions"]
    assert [q["questionNo"] for q in questions] == [1, 2]
    assert questions[1]["display"]["inputType"] == "multiSelectDropdown"
    assert questions[1]["submissionBehavior"] == "manualAnswer"

    _, draft = FormService(repo).load_draft(FORM_ID)
    assert draft["title"] == "Customer Feedback"
    assert draft["settings"]["journeyScript"] == "Thank the user warmly."
    assert _assistant_messages(repo) == ["Your feedback form is ready."]


def test_tool_exception_becomes_failed_snapshot_and_tool_error(_memory_store):
    repo = _memory_store
    FormService(repo).ensure_form_exists(FORM_ID, USER_ID)

    async def exploding(ctx, args):
        raise RuntimeError("generator exploded")
        yield  # pragma: no cover

    tools = {**TOOLS, "createForm": dataclasses.replace(TOOLS["createForm"], run=exploding)}
    selector = ScriptedSelector(("createForm", {"prompt": "anything"}, ""))
    outcome, frames = _run(FormAgentOrchestrator(repo=repo, programs=_programs(selector), tools=tools))

    assert outcome.success is False
    assert outcome.tool_results[0] == {"tool": "createForm", "success": False, "error": "generator exploded", "data": {}}
    assert _events(frames, "tool_error")[0]["data"]["message"] == "generator exploded"
    failed = _events(frames, "state_snapshot")[-1]
    assert failed["data"]["isComplete"] is True
    assert failed["data"]["agentState"]["status"] == "FAILED"
    assert failed["data"]["agentState"]["originalInput"] == {"prompt": "anything"}
    assert frames[-1]["success"] is False
    # The selector saw the failure on its next step.
    assert "generator exploded" in selector.calls[1]["tool_results_json"]
    assert _assistant_messages(repo) == ["I couldn't complete that: generator exploded."]


def test_selector_failure_persists_fallback_message(_memory_store):
    repo = _memory_store
    FormService(repo).ensure_form_exists(FORM_ID, USER_ID)

    def broken_selector(**kwargs):
        raise RuntimeError("model unavailable")

    outcome, frames = _run(FormAgentOrchestrator(repo=repo, programs=_programs(broken_selector)))

    assert outcome.success is False
    assert _events(frames, "agent_error")[0]["data"]["message"] == "model unavailable"
    assert {"kind": "text", "text": FALLBACK_ASSISTANT_MESSAGE} in frames
    assert frames[-1] == {"kind": "chat_completed", "formId": FORM_ID, "success": False}
    assert _assistant_messages(repo) == [FALLBACK_ASSISTANT_MESSAGE]


def test_closed_transport_still_persists_assistant_message(_memory_store):
    repo = _memory_store
    FormService(repo).ensure_form_exists(FORM_ID, USER_ID)
    channel = EventChannel()
    channel.close()
    selector = ScriptedSelector(("none", {}, "hello"))
    outcome, frames = _run(FormAgentOrchestrator(repo=repo, programs=_programs(selector)), channel=channel)

    assert frames == []
    assert outcome.transport_closed is True
    assert _assistant_messages(repo) == [FALLBACK_ASSISTANT_MESSAGE]


def test_step_budget_bounds_the_loop(_memory_store):
    repo = _memory_store
    FormService(repo).ensure_form_exists(FORM_ID, USER_ID)
    selector = ScriptedSelector(*[("getFormContext", {}, "")] * 10)
    outcome, _ = _run(FormAgentOrchestrator(repo=repo, programs=_programs(selector)))

    assert outcome.steps == 5
    assert len(selector.calls) == 5
    assert len(outcome.tool_results) == 5


def test_unknown_tool_is_reported_not_raised(_memory_store):
    repo = _memory_store
    FormService(repo).ensure_form_exists(FORM_ID, USER_ID)
    selector = ScriptedSelector(("deleteEverything", {}, ""), ("none", {}, "Sorry, I can't do that."))
    outcome, frames = _run(FormAgentOrchestrator(repo=repo, programs=_programs(selector)))

    assert outcome.success is True
    assert outcome.tool_results[0]["error"] == "Unknown tool: deleteEverything"
    assert _events(frames, "tool_error")


def test_parse_decision_treats_none_as_reply():
    d = parse_decision(SimpleNamespace(tool_name="None", tool_args_json="", reply="  hi  "))
    assert d.tool_name is None
    assert d.reply == "hi"
    d = parse_decision(SimpleNamespace(tool_name="updateForm", tool_args_json='```json\n{"updates": {}}\n```', reply=""))
    assert d.tool_name == "updateForm"
    assert d.args == {"updates": {}}


def test_question_that_never_validates_is_dropped_with_validation_error(_memory_store):
    repo = _memory_store
    FormService(repo).ensure_form_exists(FORM_ID, USER_ID)
    broken_rating = {"title": "How would you rate us?", "display": {"inputType": "star"}, "submissionBehavior": "autoAnswer"}
    repair_calls = []

    def generator(*, question_type, **kwargs):
        if question_type == "rating":
            return SimpleNamespace(question_json=json.dumps(broken_rating))
        return _question_generator(question_type=question_type, **kwargs)

    def repairer(**kwargs):
        repair_calls.append(kwargs)
        return SimpleNamespace(repaired_question_json=json.dumps(broken_rating))

    selector = ScriptedSelector(("createForm", {"prompt": "customer feedback survey"}, ""), ("none", {}, "Done."))
    programs = AgentPrograms(planner=_planner, question_generator=generator, question_repairer=repairer, tool_selector=selector)
    outcome, frames = _run(FormAgentOrchestrator(repo=repo, programs=programs))

    assert len(repair_calls) == 2
    failed = [e for e in _events(frames, "task_failed") if e["data"]["taskType"] == "generate_question_schema"]
    assert len(failed) == 1
    assert failed[0]["data"]["message"].startswith("Question generation failed after 3 attempts.")

    error = _events(frames, "validation_error")[0]
    assert error["data"]["recoverable"] is True
    assert error["data"]["details"]["questionSpec"]["type"] == "rating"
    assert any("ratingConfig" in issue for issue in error["data"]["details"]["issues"])

    assert outcome.success is True
    final = [e for e in _events(frames, "state_snapshot") if e["data"]["isComplete"]][-1]
    assert final["data"]["agentState"]["status"] == "COMPLETED"
    assert [q["questionType"] for q in final["data"]["form"]["questions"]] == ["multipleChoice"]
