"""
Mailbox-owned agent session state.

`AgentStore` is the only holder of the `AgentSessionState` value. Callers never mutate
it: they post messages, the store's loop applies them in order with the pure reducer
and notifies subscribers with the new value.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, List, Optional

from client.reducer import (
    AgentSessionState,
    initial_state,
    initialize_connection,
    reduce,
    reset,
    set_initial_prompt,
)

logger = logging.getLogger("client.store")

Subscriber = Callable[[AgentSessionState], None]


@dataclass(frozen=True)
class ProcessEvent:
    event: Any


@dataclass(frozen=True)
class InitializeConnection:
    form_id: str


@dataclass(frozen=True)
class ResetStore:
    keep_form_id: bool = False


@dataclass(frozen=True)
class SetInitialPrompt:
    prompt: Optional[str]


_STOP = object()


def apply_message(state: AgentSessionState, message: Any) -> AgentSessionState:
    if isinstance(message, ProcessEvent):
        return reduce(state, message.event)
    if isinstance(message, InitializeConnection):
        return initialize_connection(state, message.form_id)
    if isinstance(message, ResetStore):
        return reset(state, keep_form_id=message.keep_form_id)
    if isinstance(message, SetInitialPrompt):
        return set_initial_prompt(state, message.prompt)
    raise TypeError(f"Unknown store message: {type(message).__name__}")


class AgentStore:
    def __init__(self, state: Optional[AgentSessionState] = None) -> None:
        self._state = state or initial_state()
        self._mailbox: asyncio.Queue = asyncio.Queue()
        self._subscribers: List[Subscriber] = []

    @property
    def state(self) -> AgentSessionState:
        return self._state

    def subscribe(self, fn: Subscriber) -> Callable[[], None]:
        self._subscribers.append(fn)

        def _unsubscribe() -> None:
            if fn in self._subscribers:
                self._subscribers.remove(fn)

        return _unsubscribe

    def post(self, message: Any) -> None:
        self._mailbox.put_nowait(message)

    def stop(self) -> None:
        self._mailbox.put_nowait(_STOP)

    async def run(self) -> None:
        """Apply posted messages until `stop()`."""
        while True:
            message = await self._mailbox.get()
            try:
                if message is _STOP:
                    return
                self._apply(message)
            finally:
                self._mailbox.task_done()

    async def drain(self) -> None:
        """Wait until every message posted so far has been applied."""
        await self._mailbox.join()

    def _apply(self, message: Any) -> None:
        try:
            new_state = apply_message(self._state, message)
        except Exception as e:
            logger.warning("[AgentStore] dropped %s: %s", type(message).__name__, e)
            return
        if new_state is self._state:
            return
        self._state = new_state
        for fn in list(self._subscribers):
            fn(new_state)


__all__ = [
    "AgentStore",
    "InitializeConnection",
    "ProcessEvent",
    "ResetStore",
    "SetInitialPrompt",
    "apply_message",
]
