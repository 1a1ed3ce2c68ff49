"""
Decode the chat stream back into frames.

Accepts both transports `POST /api/chat` speaks: NDJSON (one JSON object per line) and
SSE (`data: {...}` lines, comments starting with `:`).
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, AsyncIterator, Iterable, Iterator, Optional

from schemas.agent_events import parse_agent_event


@dataclass(frozen=True)
class Frame:
    kind: str
    text: Optional[str] = None
    event: Any = None
    form_id: Optional[str] = None
    success: Optional[bool] = None
    raw: Any = None


def decode_frame(line: str) -> Optional[Frame]:
    """
    Parse one line of the stream. Blank lines, SSE comments and `event:` lines yield None.
    Raises ValueError for a data line that is not a JSON object.
    """
    s = (line or "").strip()
    if not s or s.startswith(":") or s.startswith("event:"):
        return None
    if s.startswith("data:"):
        s = s[len("data:"):].strip()
        if not s:
            return None

    obj = json.loads(s)
    if not isinstance(obj, dict):
        raise ValueError("stream frame must be a JSON object")

    kind = str(obj.get("kind") or "")
    if kind == "text":
        return Frame(kind=kind, text=str(obj.get("text") or ""), raw=obj)
    if kind == "agent_event":
        return Frame(kind=kind, event=parse_agent_event(obj.get("event")), raw=obj)
    if kind in ("chat_initialized", "chat_completed"):
        success = obj.get("success")
        return Frame(
            kind=kind,
            form_id=obj.get("formId"),
            success=bool(success) if success is not None else None,
            raw=obj,
        )
    if "category" in obj:
        # Bare event objects, as stored in an event log.
        return Frame(kind="agent_event", event=parse_agent_event(obj), raw=obj)
    return Frame(kind=kind or "unknown", raw=obj)


def iter_frames(lines: Iterable[str]) -> Iterator[Frame]:
    for line in lines:
        frame = decode_frame(line)
        if frame is not None:
            yield frame


async def aiter_frames(lines: AsyncIterator[str]) -> AsyncIterator[Frame]:
    async for line in lines:
        frame = decode_frame(line)
        if frame is not None:
            yield frame


def events_only(frames: Iterable[Frame]) -> Iterator[Any]:
    for frame in frames:
        if frame.kind == "agent_event":
            yield frame.event


__all__ = ["Frame", "aiter_frames", "decode_frame", "events_only", "iter_frames"]
