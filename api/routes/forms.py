from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import anyio
from fastapi import APIRouter, Body, Depends
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from api.auth import AuthContext
from api.deps import get_programs, get_repo, get_usage_limiter, require_auth
from api.usage_limits import UsageLimiter
from api.utils import error_response
from programs.form_agent.errors import FormValidationError, NotFoundError
from programs.form_agent.forms import FormService, build_snapshot
from programs.form_agent.generation import generate_form
from programs.form_generator.program import AgentPrograms
from programs.form_schema.minor_update import strip_protected_fields
from schemas.api_models import CreateFormRequest, CreateFormResponse
from storage.base import FormRepository

logger = logging.getLogger("api.forms")

router = APIRouter(prefix="/api/forms", tags=["forms"])


@router.post("/{form_id}", response_model=CreateFormResponse)
async def create_form(
    form_id: str,
    body: Dict[str, Any] = Body(default_factory=dict),
    auth: AuthContext = Depends(require_auth),
    repo: FormRepository = Depends(get_repo),
    programs: Optional[AgentPrograms] = Depends(get_programs),
    limiter: UsageLimiter = Depends(get_usage_limiter),
) -> Any:
    """
    Create a whole form from a prompt in one call (no streaming).

    The path id is informational: a fresh form id is always allocated and returned.
    """
    try:
        parsed = CreateFormRequest.model_validate(body)
    except ValidationError:
        return error_response(400, "missing_user_prompt", "Error, missing userPrompt")

    if auth.is_guest:
        limit = limiter.check_limit(auth.user_id)
        if not limit.get("allowed"):
            return error_response(403, "usage_limit", str(limit.get("reason") or "Guest user limits exceeded"))

    if programs is None:
        return error_response(500, "internal_error", "DSPy LM not configured (set GROQ_API_KEY or OPENAI_API_KEY).")

    logger.info("[forms] creating form from prompt for user %s (path id %s)", auth.user_id, form_id)
    generated = await anyio.to_thread.run_sync(lambda: generate_form(programs, parsed.user_prompt))
    created = await anyio.to_thread.run_sync(
        lambda: FormService(repo).create_form_with_draft(
            auth.user_id,
            title=generated["title"],
            description=generated["description"],
            questions=generated["questions"],
            settings=generated["settings"],
        )
    )
    return CreateFormResponse(**created)


@router.patch("/{form_id}")
async def update_form(
    form_id: str,
    body: Any = Body(default=None),
    repo: FormRepository = Depends(get_repo),
) -> Any:
    if not isinstance(body, dict):
        return error_response(400, "invalid_body", "Invalid request body")

    updates = strip_protected_fields(body)
    if not updates:
        return error_response(400, "no_updatable_fields", "No updatable fields provided")

    try:
        updated = await anyio.to_thread.run_sync(lambda: FormService(repo).apply_minor_update(form_id, updates))
    except NotFoundError as e:
        return error_response(404, "not_found", str(e))
    except FormValidationError as e:
        return error_response(400, "minor_update_rejected", str(e))
    return JSONResponse(updated)


@router.get("/{form_id}")
async def get_form(form_id: str, repo: FormRepository = Depends(get_repo)) -> Any:
    try:
        form_row, version_row = await anyio.to_thread.run_sync(lambda: FormService(repo).get_display_version(form_id))
    except NotFoundError as e:
        return error_response(404, "not_found", str(e))
    snapshot = build_snapshot(form_row, version_row)
    return JSONResponse(snapshot.model_dump(by_alias=True, mode="json"))
