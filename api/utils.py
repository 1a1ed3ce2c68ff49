from __future__ import annotations

import json
import time
import uuid
from typing import Any, Dict, Optional

from fastapi.responses import JSONResponse

STREAM_HEADERS = {
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
    "X-Content-Type-Options": "nosniff",
}


def new_request_id(prefix: str = "req") -> str:
    return f"{prefix}_{int(time.time() * 1000)}_{uuid.uuid4().hex[:8]}"


def error_response(
    status_code: int,
    error: str,
    message: str,
    *,
    request_id: Optional[str] = None,
    details: Any = None,
) -> JSONResponse:
    content: Dict[str, Any] = {
        "ok": False,
        "error": error,
        "message": message,
        "requestId": request_id or new_request_id("err"),
    }
    if details is not None:
        content["details"] = details
    return JSONResponse(status_code=status_code, content=content)


def sse(event: str, data: Any) -> str:
    # SSE format reminder:
    #   event: <name>\n
    #   data: <json>\n\n
    return f"event: {event}\ndata: {json.dumps(data, ensure_ascii=False)}\n\n"


def sse_comment(text: str) -> str:
    # SSE "comment" lines start with ":" and are ignored by EventSource clients.
    t = str(text or "").replace("\n", " ").replace("\r", " ")
    return f": {t}\n\n"


def sse_padding(bytes_hint: int = 2048) -> str:
    n = max(0, int(bytes_hint))
    return f": {' ' * n}\n\n"
