"""
Per-session event channel between the orchestrator (single writer) and the HTTP stream.

Frames are plain dicts:
  {"kind": "chat_initialized", "formId": ...}
  {"kind": "text", "text": ...}
  {"kind": "agent_event", "event": {...wire event...}}
  {"kind": "chat_completed", "formId": ..., "success": bool}

The channel is a bounded asyncio queue: writers wait when the reader falls behind.
Once closed (reader went away or the run finished) every write raises `TransportError`,
including a write already waiting for room in a full queue.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, AsyncIterator, Dict, Optional

from programs.form_agent.errors import TransportError
from schemas.agent_events import event_to_wire

logger = logging.getLogger("form_agent.transport")

_CLOSE = object()

DEFAULT_CAPACITY = 256


def text_frame(text: str) -> Dict[str, Any]:
    return {"kind": "text", "text": str(text or "")}


def event_frame(event: Any) -> Dict[str, Any]:
    wire = event if isinstance(event, dict) else event_to_wire(event)
    return {"kind": "agent_event", "event": wire}


def chat_initialized_frame(form_id: str) -> Dict[str, Any]:
    return {"kind": "chat_initialized", "formId": form_id}


def chat_completed_frame(form_id: str, *, success: bool) -> Dict[str, Any]:
    return {"kind": "chat_completed", "formId": form_id, "success": bool(success)}


def encode_ndjson(frame: Dict[str, Any]) -> str:
    return json.dumps(frame, ensure_ascii=False, separators=(",", ":")) + "\n"


class EventChannel:
    def __init__(self, *, capacity: int = DEFAULT_CAPACITY) -> None:
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=max(1, int(capacity)))
        self._closed = False
        self._closed_event = asyncio.Event()
        self.frames_sent = 0

    @property
    def closed(self) -> bool:
        return self._closed

    async def send(self, frame: Dict[str, Any]) -> None:
        if self._closed:
            raise TransportError("Event channel is closed.")
        try:
            self._queue.put_nowait(frame)
        except asyncio.QueueFull:
            await self._put_unless_closed(frame)
        self.frames_sent += 1

    async def _put_unless_closed(self, frame: Dict[str, Any]) -> None:
        """
        Wait for room in the queue, but give up as soon as the channel closes: a reader that
        went away never frees a slot.
        """
        put = asyncio.ensure_future(self._queue.put(frame))
        closed = asyncio.ensure_future(self._closed_event.wait())
        try:
            done, _ = await asyncio.wait({put, closed}, return_when=asyncio.FIRST_COMPLETED)
        except BaseException:
            put.cancel()
            closed.cancel()
            raise
        closed.cancel()
        if put in done:
            return
        put.cancel()
        raise TransportError("Event channel closed while waiting to send.")

    async def send_event(self, event: Any) -> None:
        await self.send(event_frame(event))

    async def send_text(self, text: str) -> None:
        if text:
            await self.send(text_frame(text))

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._closed_event.set()
        try:
            self._queue.put_nowait(_CLOSE)
        except asyncio.QueueFull:
            # Reader drains the backlog and stops on the closed flag.
            pass

    async def __aiter__(self) -> AsyncIterator[Dict[str, Any]]:
        while True:
            if self._closed and self._queue.empty():
                return
            item = await self._queue.get()
            if item is _CLOSE:
                return
            yield item


async def pump(channel: EventChannel, producer: Any, *, on_error: Optional[Any] = None) -> None:
    """
    Run `producer` (a coroutine) and close the channel when it finishes, however it finishes.
    """
    try:
        await producer
    except TransportError:
        logger.info("[transport] channel closed before producer finished")
    except Exception as e:
        logger.exception("[transport] producer failed: %s", e)
        if on_error is not None:
            on_error(e)
    finally:
        channel.close()


__all__ = [
    "DEFAULT_CAPACITY",
    "EventChannel",
    "chat_completed_frame",
    "chat_initialized_frame",
    "encode_ndjson",
    "event_frame",
    "pump",
    "text_frame",
]
