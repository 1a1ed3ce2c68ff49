from __future__ import annotations

import json
import logging
import time
import uuid
from typing import Any, Dict, Iterable, List, Optional, Tuple

from starlette.types import ASGIApp, Message, Receive, Scope, Send

from programs.form_agent.lm import env_bool, env_int

logger = logging.getLogger("api.http")


_SENSITIVE_KEYS = {
    "authorization",
    "cookie",
    "set-cookie",
    "x-api-key",
    "api_key",
    "apikey",
    "access_token",
    "refresh_token",
    "token",
    "secret",
    "password",
    "openai_api_key",
    "groq_api_key",
    "openrouter_api_key",
    "supabase_service_role_key",
}

_STREAM_TYPES = ("application/x-ndjson", "text/event-stream")


def _redact(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: ("***" if str(k).lower() in _SENSITIVE_KEYS else _redact(v)) for k, v in value.items()}
    if isinstance(value, list):
        return [_redact(v) for v in value]
    return value


def _header(headers: Iterable[Tuple[bytes, bytes]], name: bytes) -> str:
    for k, v in headers:
        if k.lower() == name:
            return v.decode("latin-1", errors="replace")
    return ""


def _decode_headers(headers: Iterable[Tuple[bytes, bytes]]) -> Dict[str, str]:
    out: Dict[str, str] = {}
    for k, v in headers:
        ks = k.decode("latin-1", errors="replace").lower()
        out[ks] = "***" if ks in _SENSITIVE_KEYS else v.decode("latin-1", errors="replace")
    return out


def _parse_body(content_type: str, body: bytes) -> Any:
    ct = (content_type or "").lower()
    if not body:
        return ""
    text = body.decode("utf-8", errors="replace")
    if "application/json" in ct:
        try:
            return _redact(json.loads(text))
        except ValueError:
            return text
    if ct.startswith("text/"):
        return text
    return "<binary>"


def _is_stream(content_type: str) -> bool:
    ct = (content_type or "").lower()
    return any(t in ct for t in _STREAM_TYPES)


class _Capture:
    """Body bytes up to a cap, plus chunk/line counts for streamed responses."""

    def __init__(self, max_bytes: int) -> None:
        self.max_bytes = max_bytes
        self.buf = bytearray()
        self.truncated = False
        self.chunks = 0
        self.frames = 0
        self.total_bytes = 0

    def feed(self, body: bytes, *, count_frames: bool) -> None:
        if not body:
            return
        self.chunks += 1
        self.total_bytes += len(body)
        if count_frames:
            self.frames += body.count(b"\n\n") if body.startswith((b"event:", b"data:", b":")) else body.count(b"\n")
            return
        if self.max_bytes <= 0 or self.truncated:
            return
        remaining = self.max_bytes - len(self.buf)
        if remaining > 0:
            self.buf.extend(body[:remaining])
        if len(body) > remaining:
            self.truncated = True


class HttpLoggingMiddleware:
    def __init__(self, app: ASGIApp, *, log_headers: bool, max_body_bytes: int) -> None:
        self.app = app
        self.log_headers = log_headers
        self.max_body_bytes = max(0, max_body_bytes)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope.get("type") != "http":
            await self.app(scope, receive, send)
            return

        started_at = time.perf_counter()
        req_headers_list: List[Tuple[bytes, bytes]] = list(scope.get("headers") or [])
        request_id = _header(req_headers_list, b"x-request-id") or uuid.uuid4().hex[:12]
        req_ct = _header(req_headers_list, b"content-type")

        req = _Capture(self.max_body_bytes)
        res = _Capture(self.max_body_bytes)
        res_headers_list: List[Tuple[bytes, bytes]] = []
        res_status: Optional[int] = None
        res_ct = ""

        async def receive_wrapped() -> Message:
            message = await receive()
            if message.get("type") == "http.request":
                req.feed(message.get("body") or b"", count_frames=False)
            return message

        async def send_wrapped(message: Message) -> None:
            nonlocal res_status, res_headers_list, res_ct
            if message.get("type") == "http.response.start":
                res_status = int(message.get("status") or 0)
                res_headers_list = list(message.get("headers") or [])
                res_ct = _header(res_headers_list, b"content-type")
            elif message.get("type") == "http.response.body":
                res.feed(message.get("body") or b"", count_frames=_is_stream(res_ct))
            await send(message)

        err: Optional[BaseException] = None
        try:
            await self.app(scope, receive_wrapped, send_wrapped)
        except BaseException as e:  # noqa: BLE001 - log then re-raise
            err = e
            raise
        finally:
            record: Dict[str, Any] = {
                "id": request_id,
                "method": str(scope.get("method") or "").upper(),
                "path": str(scope.get("path") or ""),
                "query": (scope.get("query_string") or b"").decode("latin-1", errors="ignore"),
                "status": res_status,
                "dur_ms": int((time.perf_counter() - started_at) * 1000),
                "user_id": _header(req_headers_list, b"x-user-id") or None,
                "form_id": _header(res_headers_list, b"x-form-id") or None,
                "request": {
                    "content_type": req_ct,
                    "headers": _decode_headers(req_headers_list) if self.log_headers else {},
                    "body": _parse_body(req_ct, bytes(req.buf)),
                    "body_truncated": req.truncated,
                },
            }
            if _is_stream(res_ct):
                record["response"] = {
                    "content_type": res_ct,
                    "stream": {"chunks": res.chunks, "frames": res.frames, "bytes": res.total_bytes},
                }
            else:
                record["response"] = {
                    "content_type": res_ct,
                    "headers": _decode_headers(res_headers_list) if self.log_headers else {},
                    "body": _parse_body(res_ct, bytes(res.buf)),
                    "body_truncated": res.truncated,
                }
            if err is not None:
                record["error"] = {"type": type(err).__name__, "message": str(err)}

            # One-line JSON for easy grepping in server logs.
            logger.info(json.dumps(record, ensure_ascii=False, separators=(",", ":"), default=str))


def install_http_logging(app: Any) -> None:
    """
    Enable request/response logging via env vars.

    - `FORMCRAFT_HTTP_LOG=1` enables middleware
    - `FORMCRAFT_HTTP_LOG_HEADERS=1` logs request/response headers (redacted)
    - `FORMCRAFT_HTTP_LOG_BODY_MAX_BYTES=4096` caps body bytes captured per request/response;
      streamed chat responses are summarized (chunks, frames, bytes) instead of captured
    """
    if not env_bool("FORMCRAFT_HTTP_LOG", default=False):
        return
    log_headers = env_bool("FORMCRAFT_HTTP_LOG_HEADERS", default=False)
    max_body_bytes = env_int("FORMCRAFT_HTTP_LOG_BODY_MAX_BYTES", default=4096)
    app.add_middleware(HttpLoggingMiddleware, log_headers=log_headers, max_body_bytes=max_body_bytes)
