"""
Tool executors for the form agent.

Each executor is an async generator: it yields `AgentEvent`s as its phases progress and
may yield one final `ToolResult`. Executors that mutate the form (createForm, updateForm)
always finish with a `state_snapshot` whose `isComplete` is true; their outcome is read
from that snapshot by the orchestrator.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator, Callable, Dict, List, Optional

import anyio

from programs.form_agent.errors import FormValidationError, ToolExecutionError
from programs.form_agent.forms import FormService, build_snapshot, new_id, new_version_id
from programs.form_agent.generation import generate_question, plan_form
from programs.form_generator.program import AgentPrograms
from programs.form_schema.repair import repair_questions
from programs.form_schema.validation import validate_question
from schemas.agent_events import (
    PLANNING_MARKER,
    AgentState,
    ErrorDetails,
    EventSequencer,
    FormMetadata,
    StateSnapshotEvent,
    create_agent_event,
)
from schemas.questions import FormSnapshot
from schemas.tool_models import (
    CreateFormArgs,
    GetFormContextArgs,
    QueryDocsArgs,
    ShowConfigButtonArgs,
    ToolResult,
    UpdateFormArgs,
)
from storage.base import FormRepository

logger = logging.getLogger("form_agent.tools")


@dataclass
class ToolContext:
    form_id: str
    user_id: str
    repo: FormRepository
    sequencer: EventSequencer
    programs: Optional[AgentPrograms] = None

    @property
    def forms(self) -> FormService:
        return FormService(self.repo)

    def event(self, type: str, category: str, data: Any) -> Any:
        return create_agent_event(type, category, data, self.form_id, self.user_id, self.sequencer.next())

    def require_programs(self) -> AgentPrograms:
        if self.programs is None:
            raise ToolExecutionError("form_agent", "DSPy LM not configured (set GROQ_API_KEY or OPENAI_API_KEY).")
        return self.programs


def _snapshot_event(
    ctx: ToolContext,
    form: FormSnapshot,
    agent_state: AgentState,
    *,
    is_complete: bool,
) -> Any:
    return ctx.event(
        "state_snapshot",
        "state",
        {
            "form": form.model_dump(by_alias=True),
            "agentState": agent_state.model_dump(by_alias=True),
            "isComplete": is_complete,
        },
    )


def _form(
    ctx: ToolContext,
    form_row: Optional[Dict[str, Any]],
    *,
    version_id: Optional[str] = None,
    title: Optional[str] = None,
    description: Optional[str] = None,
    questions: Optional[List[Dict[str, Any]]] = None,
    settings: Optional[Dict[str, Any]] = None,
) -> FormSnapshot:
    row = dict(form_row or {"id": ctx.form_id})
    snap = build_snapshot(row, None)
    return snap.model_copy(
        update={
            "version_id": version_id or row.get("current_draft_version_id") or new_version_id(),
            "title": title or snap.title,
            "description": description,
            "questions": list(questions or []),
            "settings": dict(settings or {}),
        }
    )


def failed_snapshot(ctx: ToolContext, *, node: str, message: str, original_input: Any) -> Any:
    """
    Terminal FAILED snapshot carrying whatever the draft currently holds.
    """
    try:
        form_row, version_row = ctx.forms.load_draft(ctx.form_id)
        form = build_snapshot(form_row, version_row)
    except Exception:
        form = _form(ctx, None)
    state = AgentState(
        formId=ctx.form_id,
        userId=ctx.user_id,
        status="FAILED",
        originalInput=original_input,
        formMetadata=FormMetadata(title=form.title, description=form.description or ""),
        errorDetails=ErrorDetails(node=node, message=message),
    )
    return _snapshot_event(ctx, form, state, is_complete=True)


def _renumber(questions: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    out: List[Dict[str, Any]] = []
    for i, q in enumerate(questions):
        if q.get("questionNo") != i + 1:
            q = {**q, "questionNo": i + 1}
        out.append(q)
    return out


async def create_form(ctx: ToolContext, args: CreateFormArgs) -> AsyncIterator[Any]:
    """
    plan -> per-question generation -> finalize (repair, persist new draft).
    """
    state = AgentState(formId=ctx.form_id, userId=ctx.user_id, status="INITIALIZING", originalInput=args.prompt)
    form_row: Optional[Dict[str, Any]] = None
    title = ""
    description = ""
    questions: List[Dict[str, Any]] = []

    yield ctx.event(
        "agent_initialized",
        "system",
        {"message": "Form creation agent initialized.", "details": {"inputType": "prompt", "prompt": args.prompt}},
    )

    try:
        programs = ctx.require_programs()
        form_row, _ = ctx.forms.load_draft(ctx.form_id)
        state.status = "RUNNING"

        plan_task = f"plan_{ctx.form_id}"
        yield ctx.event(
            "task_started",
            "progress",
            {
                "taskId": plan_task,
                "taskType": "metadata_and_task_generation",
                "current": 0,
                "total": 1,
                "message": "Generating form metadata and task list...",
            },
        )
        try:
            plan = await anyio.to_thread.run_sync(lambda: plan_form(programs, args.prompt))
        except Exception as e:
            yield ctx.event(
                "task_failed",
                "progress",
                {"taskId": plan_task, "taskType": "metadata_and_task_generation", "message": str(e)},
            )
            raise

        title = plan["title"]
        description = plan["description"]
        specs = plan["questionDetails"]
        total = len(specs)
        state.form_metadata = FormMetadata(title=title, description=description)

        yield ctx.event(
            "agent_warning",
            "system",
            {
                "message": f"Task list generated for form {title}. {total} tasks created.",
                "details": {"taskCount": total + 2, "questionTaskCount": total, "event_source": PLANNING_MARKER},
            },
        )
        yield ctx.event(
            "task_completed",
            "progress",
            {
                "taskId": plan_task,
                "taskType": "metadata_and_task_generation",
                "current": 1,
                "total": 1,
                "message": "Form metadata and task list generated successfully.",
            },
        )
        yield _snapshot_event(ctx, _form(ctx, form_row, title=title, description=description), state, is_complete=False)

        for i, spec in enumerate(specs):
            task_id = f"question_{i + 1}_{ctx.form_id}"
            yield ctx.event(
                "task_started",
                "progress",
                {
                    "taskId": task_id,
                    "taskType": "generate_question_schema",
                    "current": i,
                    "total": total,
                    "message": f"Generating question {i + 1} of {total}...",
                },
            )
            try:
                question = await anyio.to_thread.run_sync(
                    lambda: generate_question(programs, spec=spec, form_title=title, question_no=len(questions) + 1)
                )
            except FormValidationError as e:
                logger.warning("[FormAgent] question %s dropped: %s", i + 1, e)
                yield ctx.event(
                    "task_failed",
                    "progress",
                    {"taskId": task_id, "taskType": "generate_question_schema", "current": i, "total": total, "message": str(e)},
                )
                yield ctx.event(
                    "validation_error",
                    "error",
                    {"message": str(e), "details": {"issues": e.issues, "questionSpec": spec}, "recoverable": True},
                )
                continue

            questions.append(question)
            yield ctx.event(
                "task_completed",
                "progress",
                {
                    "taskId": task_id,
                    "taskType": "generate_question_schema",
                    "current": i + 1,
                    "total": total,
                    "message": f"Generated question: {question.get('title')}",
                },
            )
            yield _snapshot_event(
                ctx,
                _form(ctx, form_row, title=title, description=description, questions=questions),
                state,
                is_complete=False,
            )

        if not questions:
            raise FormValidationError("No questions could be generated for this form.")

        finalize_task = f"finalize_{ctx.form_id}"
        yield ctx.event(
            "task_started",
            "progress",
            {"taskId": finalize_task, "taskType": "finalize_form", "message": "Starting form finalization process..."},
        )
        questions = _renumber(repair_questions(questions))
        settings = dict((ctx.repo.get_version(str(form_row.get("current_draft_version_id"))) or {}).get("settings") or {})
        if plan.get("journeyScript"):
            settings["journeyScript"] = plan["journeyScript"]
        version_id = ctx.forms.save_new_draft(
            ctx.form_id,
            ctx.user_id,
            title=title,
            description=description,
            questions=questions,
            settings=settings,
        )
        form_row = {**form_row, "current_draft_version_id": version_id}
        yield ctx.event(
            "task_completed",
            "progress",
            {"taskId": finalize_task, "taskType": "finalize_form", "message": "Form finalization completed successfully."},
        )

        state.status = "COMPLETED"
        yield _snapshot_event(
            ctx,
            _form(
                ctx,
                form_row,
                version_id=version_id,
                title=title,
                description=description,
                questions=questions,
                settings=settings,
            ),
            state,
            is_complete=True,
        )
    except Exception as e:
        logger.error("[FormAgent] createForm failed for %s: %s", ctx.form_id, e)
        yield ctx.event("agent_error", "error", {"message": str(e), "recoverable": False})
        state.status = "FAILED"
        state.error_details = ErrorDetails(node="createForm", message=str(e))
        yield _snapshot_event(
            ctx,
            _form(ctx, form_row, title=title or None, description=description or None, questions=questions),
            state,
            is_complete=True,
        )

    yield ctx.event(
        "agent_finalized",
        "system",
        {"message": f"Form creation agent finalized with status: {state.status}."},
    )


def apply_question_actions(
    questions: List[Dict[str, Any]],
    actions: List[Any],
    *,
    warnings: Optional[List[str]] = None,
) -> List[Dict[str, Any]]:
    """
    Apply add / update / remove actions in order. Unknown question ids are skipped and
    reported through `warnings`.
    """
    out = list(questions)
    for action in actions:
        if action.action == "add":
            data = dict(action.question_data)
            data["id"] = str(data.get("id") or "").strip() or new_id()
            out.append(data)
        elif action.action == "update":
            if not any(q.get("id") == action.question_id for q in out):
                if warnings is not None:
                    warnings.append(f"Question {action.question_id} not found; update skipped.")
                continue
            out = [{**q, **action.question_data, "id": q["id"]} if q.get("id") == action.question_id else q for q in out]
        elif action.action == "remove":
            before = len(out)
            out = [q for q in out if q.get("id") != action.question_id]
            if len(out) == before and warnings is not None:
                warnings.append(f"Question {action.question_id} not found; remove skipped.")
    return out


async def update_form(ctx: ToolContext, args: UpdateFormArgs) -> AsyncIterator[Any]:
    updates = args.updates
    original_input = updates.model_dump(by_alias=True, exclude_none=True)
    state = AgentState(formId=ctx.form_id, userId=ctx.user_id, status="INITIALIZING", originalInput=original_input)
    form_row: Optional[Dict[str, Any]] = None
    title: Optional[str] = None
    description: Optional[str] = None
    questions: List[Dict[str, Any]] = []
    settings: Dict[str, Any] = {}

    yield ctx.event("agent_initialized", "system", {"message": "Update agent initialized."})
    state.status = "RUNNING"
    state.form_metadata = FormMetadata(title="Untitled Form", description="")
    yield _snapshot_event(ctx, _form(ctx, None), state, is_complete=False)

    try:
        form_row, version_row = ctx.forms.load_draft(ctx.form_id)
        current = build_snapshot(form_row, version_row)
        title = current.title
        description = current.description
        questions = list(current.questions)
        settings = dict(current.settings)

        if updates.title is not None:
            title = updates.title
        if updates.description is not None:
            description = updates.description
        if updates.settings:
            settings = {**settings, **updates.settings}

        warnings: List[str] = []
        questions = _renumber(repair_questions(apply_question_actions(questions, updates.questions, warnings=warnings)))
        for message in warnings:
            yield ctx.event("agent_warning", "system", {"message": message})

        problems: List[str] = []
        for q in questions:
            for issue in validate_question(q):
                problems.append(f"{q.get('id')}: {issue}")
        if problems:
            raise FormValidationError("Updated questions failed validation.", issues=problems)

        state.form_metadata = FormMetadata(title=title, description=description or "")
        yield _snapshot_event(
            ctx,
            _form(ctx, form_row, title=title, description=description, questions=questions, settings=settings),
            state,
            is_complete=False,
        )

        version_id = ctx.forms.save_new_draft(
            ctx.form_id,
            ctx.user_id,
            title=title,
            description=description,
            questions=questions,
            settings=settings,
        )
        form_row = {**form_row, "current_draft_version_id": version_id}
        state.status = "COMPLETED"
        yield _snapshot_event(
            ctx,
            _form(
                ctx,
                form_row,
                version_id=version_id,
                title=title,
                description=description,
                questions=questions,
                settings=settings,
            ),
            state,
            is_complete=True,
        )
    except Exception as e:
        logger.error("[FormAgent] updateForm failed for %s: %s", ctx.form_id, e)
        details = {"issues": e.issues} if isinstance(e, FormValidationError) else None
        yield ctx.event("agent_error", "error", {"message": str(e), "details": details, "recoverable": False})
        state.status = "FAILED"
        state.error_details = ErrorDetails(node="updateForm", message=str(e))
        yield _snapshot_event(
            ctx,
            _form(ctx, form_row, title=title, description=description, questions=questions, settings=settings),
            state,
            is_complete=True,
        )

    yield ctx.event(
        "agent_finalized",
        "system",
        {"message": f"Update agent finalized with status: {state.status}."},
    )


DOCS_TOPICS: Dict[str, str] = {
    "integrations": (
        "FormCraft supports various integrations including Slack notifications, webhook endpoints, "
        "email notifications, and custom API integrations. You can configure these in the form settings."
    ),
    "question types": (
        "FormCraft supports multiple question types: text input, multiple choice, single choice, rating scales, "
        "linear scales, likert scales, file uploads, date pickers, address fields, and ranking questions."
    ),
    "form sharing": (
        "You can share forms via direct links, embed them in websites, or integrate them into your "
        "applications using our API."
    ),
    "data export": (
        "Form responses can be exported in various formats including CSV, JSON, and Excel. "
        "You can also access data via our REST API."
    ),
    "customization": (
        "Forms can be customized with themes, custom CSS, conditional logic, validation rules, "
        "and custom result pages."
    ),
}

_DOCS_PREFIX = "I'd be happy to help with that! "


def answer_docs_query(query: str) -> str:
    lowered = str(query or "").lower()
    for topic, answer in DOCS_TOPICS.items():
        if topic in lowered:
            return _DOCS_PREFIX + answer
    return _DOCS_PREFIX + (
        "Could you be more specific about what you'd like to know about FormCraft? I can help with questions "
        "about form creation, integrations, question types, sharing options, and more."
    )


async def query_docs(ctx: ToolContext, args: QueryDocsArgs) -> AsyncIterator[Any]:
    yield ToolResult(
        tool="queryDocs",
        success=True,
        message=answer_docs_query(args.query),
        data={"query": args.query, "context": args.context},
    )


async def show_config_button(ctx: ToolContext, args: ShowConfigButtonArgs) -> AsyncIterator[Any]:
    target = args.form_id or ctx.form_id
    yield ctx.event(
        "show_config_button",
        "ui",
        {
            "action": "show_config_button",
            "buttonType": args.button_type,
            "formId": target,
            "metadata": args.metadata,
        },
    )
    yield ToolResult(
        tool="showConfigButton",
        success=True,
        message=f"{args.button_type} configuration options are now available.",
        data={"action": "config_button_shown", "buttonType": args.button_type, "formId": target},
    )


async def get_form_context(ctx: ToolContext, args: GetFormContextArgs) -> AsyncIterator[Any]:
    target = args.form_id or ctx.form_id
    context = ctx.forms.get_form_context(target)
    if context is None:
        yield ToolResult(tool="getFormContext", success=True, message="Form has no content yet.", data={"form": None, "isEmpty": True})
        return
    yield ToolResult(
        tool="getFormContext",
        success=True,
        data={"form": context, "isEmpty": not context.get("questions")},
    )


@dataclass(frozen=True)
class ToolSpec:
    name: str
    description: str
    args_model: type
    run: Callable[[ToolContext, Any], AsyncIterator[Any]]
    # Mutating tools report their outcome through the final complete snapshot.
    emits_snapshots: bool = False

    def for_model(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.args_model.model_json_schema(by_alias=True),
        }


TOOLS: Dict[str, ToolSpec] = {
    spec.name: spec
    for spec in (
        ToolSpec(
            name="createForm",
            description=(
                "Create a new form based on user requirements. Use this when users want to create a new form "
                "from scratch, including when the current form has no questions."
            ),
            args_model=CreateFormArgs,
            run=create_form,
            emits_snapshots=True,
        ),
        ToolSpec(
            name="updateForm",
            description=(
                "Update an existing form's title, description, settings or questions (add / update / remove). "
                "Use this ONLY when the form already has content to modify."
            ),
            args_model=UpdateFormArgs,
            run=update_form,
            emits_snapshots=True,
        ),
        ToolSpec(
            name="queryDocs",
            description="Answer questions about FormCraft features, capabilities, and best practices.",
            args_model=QueryDocsArgs,
            run=query_docs,
        ),
        ToolSpec(
            name="showConfigButton",
            description=(
                "Display configuration options for integrations like Slack, webhooks, or email notifications."
            ),
            args_model=ShowConfigButtonArgs,
            run=show_config_button,
        ),
        ToolSpec(
            name="getFormContext",
            description=(
                "Retrieve the current structure of the form (title, description, questions with ids and types). "
                "Use it to check whether the form is empty before choosing createForm or updateForm."
            ),
            args_model=GetFormContextArgs,
            run=get_form_context,
        ),
    )
}


def result_from_snapshot(tool_name: str, snapshot: Optional[StateSnapshotEvent]) -> ToolResult:
    if snapshot is None:
        return ToolResult(tool=tool_name, success=False, error="Tool finished without a final state snapshot.")
    agent_state = snapshot.data.agent_state
    form = snapshot.data.form
    data = {
        "formId": form.id,
        "versionId": form.version_id,
        "title": form.title,
        "questionCount": len(form.questions),
        "status": agent_state.status,
    }
    if agent_state.status == "COMPLETED":
        return ToolResult(tool=tool_name, success=True, message=f"Form \"{form.title}\" saved.", data=data)
    error = agent_state.error_details.message if agent_state.error_details else "Tool failed."
    return ToolResult(tool=tool_name, success=False, error=error, data=data)


__all__ = [
    "DOCS_TOPICS",
    "TOOLS",
    "ToolContext",
    "ToolSpec",
    "answer_docs_query",
    "apply_question_actions",
    "create_form",
    "failed_snapshot",
    "get_form_context",
    "query_docs",
    "result_from_snapshot",
    "show_config_button",
    "update_form",
]
