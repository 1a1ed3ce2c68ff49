"""
Keeps an editable form store in step with the agent's snapshots.

The agent session owns `current_form`; the editor owns its own copy. `BridgeSynchronizer`
copies the agent form into the editor only when something the editor renders actually
changed, so repeated snapshots of the same version do not clobber local state.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Callable, List, Optional, Tuple

from client.reducer import AgentSessionState
from schemas.questions import FormSnapshot

logger = logging.getLogger("client.bridge")

PLACEHOLDER_TITLE = "Untitled Form"

Signature = Tuple[Optional[str], str, str, Optional[str], str]


def _dump(value: Any) -> str:
    return json.dumps(value, sort_keys=True, ensure_ascii=False, default=str)


def form_signature(form: Optional[FormSnapshot]) -> Optional[Signature]:
    if form is None:
        return None
    return (form.version_id, _dump(form.questions), form.title, form.description, _dump(form.settings))


def has_content(form: FormSnapshot) -> bool:
    return bool(form.questions or form.settings.get("journeyScript") or form.title != PLACEHOLDER_TITLE)


class EditableFormStore:
    """In-process stand-in for the editor's form store."""

    def __init__(self, form: Optional[FormSnapshot] = None) -> None:
        self.form = form
        self.writes = 0
        self._listeners: List[Callable[[FormSnapshot], None]] = []

    def on_change(self, fn: Callable[[FormSnapshot], None]) -> None:
        self._listeners.append(fn)

    def set_form(self, form: FormSnapshot) -> None:
        self.form = form
        self.writes += 1
        for fn in list(self._listeners):
            fn(form)

    @property
    def is_placeholder(self) -> bool:
        """A fresh client-side form not yet loaded from the store."""
        f = self.form
        if f is None:
            return False
        return (
            not f.current_draft_version_id
            and not f.current_published_version_id
            and f.title == PLACEHOLDER_TITLE
        )


class BridgeSynchronizer:
    def __init__(self, store: EditableFormStore, *, form_id: Optional[str] = None) -> None:
        self.store = store
        self.form_id = form_id

    def merged_form(self, agent_form: FormSnapshot) -> FormSnapshot:
        current = self.store.form
        return FormSnapshot(
            id=agent_form.id,
            version_id=agent_form.version_id,
            short_id=agent_form.short_id or (current.short_id if current else None),
            title=agent_form.title,
            description=agent_form.description,
            questions=agent_form.questions,
            settings=agent_form.settings,
            current_draft_version_id=agent_form.version_id,
            current_published_version_id=current.current_published_version_id if current else None,
        )

    def sync(self, state: AgentSessionState) -> bool:
        """
        Apply the session's current form to the editor store. Returns True when written.
        """
        agent_form = state.current_form
        if agent_form is None:
            return False
        active_id = self.form_id or state.form_id
        if active_id and agent_form.id != active_id:
            return False

        current = self.store.form
        if self.store.is_placeholder:
            # A placeholder means the editor was just reset; agent content now is left over
            # from an earlier session and must wait for a fresh snapshot.
            if has_content(agent_form):
                logger.info("[bridge] skipped stale agent data for placeholder form %s", current.id)
                return False
        elif current is not None and current.id != agent_form.id:
            logger.info("[bridge] skipped snapshot for %s while editing %s", agent_form.id, current.id)
            return False

        if form_signature(agent_form) == form_signature(current):
            return False

        self.store.set_form(self.merged_form(agent_form))
        return True

    def __call__(self, state: AgentSessionState) -> None:
        self.sync(state)


__all__ = [
    "BridgeSynchronizer",
    "EditableFormStore",
    "PLACEHOLDER_TITLE",
    "form_signature",
    "has_content",
]
