from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Any, AsyncIterator, Dict, Optional, Set

import anyio
from fastapi import APIRouter, Body, Depends, Query, Request
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import ValidationError

from api.auth import AuthContext
from api.deps import get_programs, get_repo, get_usage_limiter, require_auth
from api.usage_limits import UsageLimiter
from api.utils import STREAM_HEADERS, error_response, new_request_id, sse, sse_padding
from programs.form_agent.forms import ChatService, FormService, new_form_id
from programs.form_agent.orchestrator import FormAgentOrchestrator
from programs.form_agent.transport import EventChannel, encode_ndjson, pump
from programs.form_generator.program import AgentPrograms
from schemas.api_models import ChatRequest
from storage.base import FormRepository

logger = logging.getLogger("api.chat")

router = APIRouter(prefix="/api/chat", tags=["chat"])

# Turns outlive their response when the client disconnects; keep them referenced until done.
_RUNNING: Set["asyncio.Task[Any]"] = set()


def _wants_sse(request: Request) -> bool:
    return "text/event-stream" in (request.headers.get("accept") or "")


def _start_turn(coro: Any) -> "asyncio.Task[Any]":
    task = asyncio.get_running_loop().create_task(coro)
    _RUNNING.add(task)
    task.add_done_callback(_RUNNING.discard)
    return task


@router.post("")
async def chat(
    request: Request,
    body: Dict[str, Any] = Body(...),
    auth: AuthContext = Depends(require_auth),
    repo: FormRepository = Depends(get_repo),
    programs: Optional[AgentPrograms] = Depends(get_programs),
    limiter: UsageLimiter = Depends(get_usage_limiter),
) -> Any:
    """
    One chat turn, streamed.

    NDJSON by default (`application/x-ndjson`, one frame per line); SSE when the client
    sends `Accept: text/event-stream` (`event: <kind>` / `data: <frame>`).
    """
    try:
        parsed = ChatRequest.model_validate(body)
    except ValidationError as exc:
        request_id = new_request_id("val")
        print(f"[chat] 422 validation_error requestId={request_id} errors={exc.errors()}", flush=True)
        return error_response(
            422,
            "validation_error",
            "Request body did not match expected schema.",
            request_id=request_id,
            details=exc.errors(include_url=False, include_context=False),
        )

    if auth.is_guest and not parsed.form_id:
        limit = limiter.check_limit(auth.user_id)
        if not limit.get("allowed"):
            return error_response(403, "usage_limit", str(limit.get("reason") or "Guest user limits exceeded"))

    form_id = parsed.form_id or new_form_id()
    forms = FormService(repo)
    ensured = await anyio.to_thread.run_sync(lambda: forms.ensure_form_exists(form_id, auth.user_id))
    if not ensured.get("created"):
        owner = (repo.get_form(form_id) or {}).get("user_id")
        if owner and owner != auth.user_id:
            return error_response(403, "forbidden", "Unauthorized to access this form")
    logger.info("[chat] form %s ensured for user %s (created=%s)", form_id, auth.user_id, ensured.get("created"))

    last = parsed.messages[-1]
    if last.role == "user":
        ChatService(repo).save_message(form_id, auth.user_id, role="user", content=last.text(), parts=last.parts)

    channel = EventChannel()
    orchestrator = FormAgentOrchestrator(repo=repo, programs=programs)
    turn = _start_turn(
        pump(
            channel,
            orchestrator.run_turn(
                form_id=form_id,
                user_id=auth.user_id,
                messages=parsed.wire_messages(),
                channel=channel,
            ),
        )
    )
    as_sse = _wants_sse(request)

    async def gen() -> AsyncIterator[str]:
        try:
            if as_sse:
                yield sse_padding(2048)
            async for frame in channel:
                yield sse(str(frame.get("kind") or "message"), frame) if as_sse else encode_ndjson(frame)
        finally:
            # Client gone or stream finished: later writes raise TransportError in the turn.
            channel.close()
            if not turn.done():
                logger.info("[chat] stream closed before turn finished for form %s", form_id)

    headers = {
        **STREAM_HEADERS,
        "X-Form-Id": form_id,
        "X-Submission-Id": uuid.uuid4().hex,
    }
    return StreamingResponse(
        gen(),
        media_type="text/event-stream" if as_sse else "application/x-ndjson",
        headers=headers,
    )


@router.get("")
async def chat_history(
    form_id: Optional[str] = Query(default=None, alias="formId"),
    auth: AuthContext = Depends(require_auth),
    repo: FormRepository = Depends(get_repo),
) -> Any:
    if not form_id:
        return error_response(400, "missing_form_id", "Missing formId parameter")

    form_row = await anyio.to_thread.run_sync(lambda: repo.get_form(form_id))
    if form_row is None:
        return error_response(404, "not_found", "Form not found")
    if form_row.get("user_id") != auth.user_id:
        return error_response(403, "forbidden", "Unauthorized to access this form")

    history = await anyio.to_thread.run_sync(lambda: ChatService(repo).get_chat_history(form_id))
    logger.info("[chat] found %s messages for form %s", len(history), form_id)
    return JSONResponse(history)
