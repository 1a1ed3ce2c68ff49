"""
Bounded tool loop for one chat turn.

Each step the tool-selector program picks at most one tool (or finishes with a reply).
Tool events are forwarded to the `EventChannel` as they are produced. A tool that
raises becomes a `{success: false, error}` result plus a `tool_error` event; the loop
goes on and the selector decides what to do next. A closed channel ends emission but
the assistant reply is still persisted.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import anyio
from pydantic import ValidationError

from programs.form_agent.errors import TransportError
from programs.form_agent.forms import ChatService, FormService
from programs.form_agent.lm import env_int
from programs.form_agent.tools import TOOLS, ToolContext, ToolSpec, failed_snapshot, result_from_snapshot
from programs.form_agent.transport import EventChannel, chat_completed_frame, chat_initialized_frame
from programs.form_generator.program import AgentPrograms
from programs.form_schema.validation import best_effort_parse_json
from schemas.agent_events import EventSequencer, StateSnapshotEvent
from schemas.tool_models import ToolResult
from storage.base import FormRepository

logger = logging.getLogger("form_agent.orchestrator")

DEFAULT_MAX_STEPS = 5

FALLBACK_ASSISTANT_MESSAGE = (
    "I'm sorry, something went wrong while working on your form. Please try again in a moment."
)

_NO_TOOL = {"", "none", "null", "reply", "finish"}


@dataclass
class ToolDecision:
    tool_name: Optional[str]
    args: Dict[str, Any]
    reply: str = ""


@dataclass
class TurnOutcome:
    reply: str
    success: bool
    steps: int = 0
    tool_results: List[Dict[str, Any]] = field(default_factory=list)
    final_status: Optional[str] = None
    transport_closed: bool = False


def parse_decision(pred: Any) -> ToolDecision:
    name = str(getattr(pred, "tool_name", "") or "").strip()
    reply = str(getattr(pred, "reply", "") or "").strip()
    if name.lower() in _NO_TOOL:
        return ToolDecision(tool_name=None, args={}, reply=reply)
    args = best_effort_parse_json(str(getattr(pred, "tool_args_json", "") or ""))
    return ToolDecision(tool_name=name, args=args if isinstance(args, dict) else {}, reply=reply)


def _conversation(messages: List[Dict[str, Any]]) -> List[Dict[str, str]]:
    out: List[Dict[str, str]] = []
    for m in messages or []:
        if not isinstance(m, dict):
            continue
        role = str(m.get("role") or "").strip()
        content = m.get("content")
        if role and content is not None:
            out.append({"role": role, "content": content if isinstance(content, str) else json.dumps(content)})
    return out


def _default_reply(results: List[Dict[str, Any]]) -> str:
    if not results:
        return "How can I help with your form?"
    last = results[-1]
    if last.get("success"):
        return str(last.get("message") or "Done.")
    return f"I couldn't complete that: {last.get('error') or 'unknown error'}."


class FormAgentOrchestrator:
    def __init__(
        self,
        *,
        repo: FormRepository,
        programs: Optional[AgentPrograms],
        tools: Optional[Dict[str, ToolSpec]] = None,
        max_steps: Optional[int] = None,
    ) -> None:
        self.repo = repo
        self.programs = programs
        self.tools = dict(tools or TOOLS)
        self.max_steps = max(1, int(max_steps or env_int("FORMCRAFT_AGENT_MAX_STEPS", DEFAULT_MAX_STEPS)))

    async def _select(self, ctx: ToolContext, conversation: List[Dict[str, str]], results: List[Dict[str, Any]]) -> ToolDecision:
        if self.programs is None:
            raise RuntimeError("DSPy LM not configured (set GROQ_API_KEY or OPENAI_API_KEY).")
        form_context = FormService(self.repo).get_form_context(ctx.form_id)
        tools_json = json.dumps([spec.for_model() for spec in self.tools.values()], ensure_ascii=False)
        selector = self.programs.tool_selector
        pred = await anyio.to_thread.run_sync(
            lambda: selector(
                conversation_json=json.dumps(conversation, ensure_ascii=False),
                form_context_json=json.dumps(form_context or {"formId": ctx.form_id, "questions": []}, ensure_ascii=False),
                tool_results_json=json.dumps(results, ensure_ascii=False, default=str),
                tools_json=tools_json,
            )
        )
        return parse_decision(pred)

    async def _tool_failure(self, ctx: ToolContext, channel: EventChannel, spec_name: str, message: str, *, args: Any) -> ToolResult:
        logger.warning("[FormAgent] tool %s failed: %s", spec_name, message)
        await channel.send_event(
            ctx.event(
                "tool_error",
                "error",
                {"message": message, "details": {"tool": spec_name}, "recoverable": True},
            )
        )
        spec = self.tools.get(spec_name)
        if spec is not None and spec.emits_snapshots:
            await channel.send_event(failed_snapshot(ctx, node=spec_name, message=message, original_input=args))
        return ToolResult(tool=spec_name, success=False, error=message)

    async def run_tool(self, ctx: ToolContext, channel: EventChannel, decision: ToolDecision) -> ToolResult:
        spec = self.tools.get(str(decision.tool_name))
        if spec is None:
            return await self._tool_failure(ctx, channel, str(decision.tool_name), f"Unknown tool: {decision.tool_name}", args=decision.args)
        try:
            args = spec.args_model.model_validate(decision.args)
        except ValidationError as e:
            return await self._tool_failure(ctx, channel, spec.name, f"Invalid arguments: {e.errors()}", args=decision.args)

        last_complete: Optional[StateSnapshotEvent] = None
        explicit: Optional[ToolResult] = None
        gen = spec.run(ctx, args)
        try:
            async for item in gen:
                if isinstance(item, ToolResult):
                    explicit = item
                    continue
                if isinstance(item, StateSnapshotEvent) and item.data.is_complete:
                    last_complete = item
                await channel.send_event(item)
        except TransportError:
            raise
        except Exception as e:
            logger.exception("[FormAgent] tool %s raised", spec.name)
            return await self._tool_failure(ctx, channel, spec.name, str(e) or type(e).__name__, args=decision.args)
        finally:
            await gen.aclose()

        if explicit is not None:
            return explicit
        if spec.emits_snapshots:
            return result_from_snapshot(spec.name, last_complete)
        return ToolResult(tool=spec.name, success=True)

    async def run_turn(
        self,
        *,
        form_id: str,
        user_id: str,
        messages: List[Dict[str, Any]],
        channel: EventChannel,
    ) -> TurnOutcome:
        ctx = ToolContext(
            form_id=form_id,
            user_id=user_id,
            repo=self.repo,
            sequencer=EventSequencer(),
            programs=self.programs,
        )
        conversation = _conversation(messages)
        outcome = TurnOutcome(reply="", success=True)
        last_status: Optional[str] = None

        try:
            await channel.send(chat_initialized_frame(form_id))
            for step in range(self.max_steps):
                decision = await self._select(ctx, conversation, outcome.tool_results)
                outcome.steps = step + 1
                if decision.tool_name is None:
                    outcome.reply = decision.reply
                    break
                logger.info("[FormAgent] step %s/%s tool=%s form=%s", step + 1, self.max_steps, decision.tool_name, form_id)
                result = await self.run_tool(ctx, channel, decision)
                if isinstance(result.data.get("status"), str):
                    last_status = result.data["status"]
                elif not result.success and self.tools.get(result.tool) is not None and self.tools[result.tool].emits_snapshots:
                    last_status = "FAILED"
                outcome.tool_results.append(result.for_model())

            if not outcome.reply:
                outcome.reply = _default_reply(outcome.tool_results)
            outcome.final_status = last_status
            outcome.success = last_status != "FAILED"
            await channel.send_text(outcome.reply)
            await channel.send(chat_completed_frame(form_id, success=outcome.success))
        except TransportError:
            logger.info("[FormAgent] client went away during turn for form %s", form_id)
            outcome.transport_closed = True
            outcome.final_status = outcome.final_status or last_status
            outcome.success = last_status != "FAILED"
            if not outcome.reply and outcome.tool_results:
                outcome.reply = _default_reply(outcome.tool_results)
        except Exception as e:
            logger.exception("[FormAgent] turn failed for form %s: %s", form_id, e)
            outcome.success = False
            outcome.final_status = "FAILED"
            outcome.reply = ""
            try:
                await channel.send_event(ctx.event("agent_error", "error", {"message": str(e), "recoverable": True}))
                await channel.send_text(FALLBACK_ASSISTANT_MESSAGE)
                await channel.send(chat_completed_frame(form_id, success=False))
            except TransportError:
                outcome.transport_closed = True
        finally:
            self._persist_reply(form_id, user_id, outcome)
        return outcome

    def _persist_reply(self, form_id: str, user_id: str, outcome: TurnOutcome) -> None:
        content = outcome.reply or FALLBACK_ASSISTANT_MESSAGE
        if not outcome.reply:
            outcome.reply = content
        ChatService(self.repo).save_message(form_id, user_id, role="assistant", content=content)


__all__ = [
    "DEFAULT_MAX_STEPS",
    "FALLBACK_ASSISTANT_MESSAGE",
    "FormAgentOrchestrator",
    "ToolDecision",
    "TurnOutcome",
    "parse_decision",
]
