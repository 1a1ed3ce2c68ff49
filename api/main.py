from __future__ import annotations

import sys
from pathlib import Path
from typing import Any

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.status import (
    HTTP_404_NOT_FOUND,
    HTTP_422_UNPROCESSABLE_ENTITY,
    HTTP_500_INTERNAL_SERVER_ERROR,
)


def _repo_root() -> Path:
    # `api/main.py` lives at `<repo>/api/main.py`
    return Path(__file__).resolve().parents[1]


def _ensure_src_on_path() -> None:
    src = _repo_root() / "src"
    if not src.is_dir():
        return
    s = str(src)
    if s not in sys.path:
        sys.path.insert(0, s)


_ensure_src_on_path()

from api.http_logging import install_http_logging  # noqa: E402
from api.routes import chat, forms, health  # noqa: E402
from api.utils import error_response, new_request_id  # noqa: E402
from programs.form_agent.errors import (  # noqa: E402
    AuthorizationError,
    FormAgentError,
    FormValidationError,
    NotFoundError,
)
from storage.base import StoreError  # noqa: E402


def _status_for_agent_error(exc: FormAgentError) -> int:
    if isinstance(exc, AuthorizationError):
        return exc.status_code
    if isinstance(exc, NotFoundError):
        return HTTP_404_NOT_FOUND
    if isinstance(exc, FormValidationError):
        return HTTP_422_UNPROCESSABLE_ENTITY
    return HTTP_500_INTERNAL_SERVER_ERROR


def create_app() -> FastAPI:
    # Load `.env` + `.env.local` when present (local dev convenience).
    load_dotenv(_repo_root() / ".env", override=False)
    load_dotenv(_repo_root() / ".env.local", override=False)

    app = FastAPI(title="formcraft-agent-service")

    @app.exception_handler(RequestValidationError)
    async def _validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        request_id = new_request_id("val")
        # Keep server logs useful without dumping full bodies.
        print(
            f"[api] 422 validation_error requestId={request_id} path={request.url.path} errors={exc.errors()}",
            flush=True,
        )
        return error_response(
            HTTP_422_UNPROCESSABLE_ENTITY,
            "validation_error",
            "Request body did not match expected schema.",
            request_id=request_id,
            details=[{k: v for k, v in e.items() if k != "ctx"} for e in exc.errors()],
        )

    @app.exception_handler(FormAgentError)
    async def _agent_error_handler(request: Request, exc: FormAgentError) -> JSONResponse:
        status = _status_for_agent_error(exc)
        request_id = new_request_id("err")
        print(f"[api] {status} {exc.code} requestId={request_id} path={request.url.path} err={exc}", flush=True)
        details: Any = exc.issues if isinstance(exc, FormValidationError) and exc.issues else None
        return error_response(status, exc.code, str(exc), request_id=request_id, details=details)

    @app.exception_handler(StoreError)
    async def _store_error_handler(request: Request, exc: StoreError) -> JSONResponse:
        request_id = new_request_id("err")
        print(f"[api] 500 store_error requestId={request_id} path={request.url.path} err={exc!r}", flush=True)
        return error_response(HTTP_500_INTERNAL_SERVER_ERROR, "store_error", str(exc), request_id=request_id)

    @app.exception_handler(Exception)
    async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        request_id = new_request_id("err")
        print(f"[api] 500 internal_error requestId={request_id} path={request.url.path} err={exc!r}", flush=True)
        return error_response(
            HTTP_500_INTERNAL_SERVER_ERROR,
            "internal_error",
            "Unhandled server error.",
            request_id=request_id,
        )

    app.include_router(health.router)
    app.include_router(chat.router)
    app.include_router(forms.router)
    install_http_logging(app)
    return app


app = create_app()
