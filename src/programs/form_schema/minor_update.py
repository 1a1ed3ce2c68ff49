"""
Guard for edits applied directly to a published form version.

A published version is structurally frozen: question count, the id at each position
and the questionType at each position cannot change. Only content fields may.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

PROTECTED_FIELDS = (
    "id",
    "version_id",
    "form_id",
    "status",
    "short_id",
    "current_draft_version_id",
    "current_published_version_id",
)

MSG_COUNT_CHANGED = "Cannot add or remove questions on a published form."
MSG_REORDERED = "Reordering questions is not allowed on a published form."


def strip_protected_fields(updates: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in (updates or {}).items() if k not in PROTECTED_FIELDS}


def validate_minor_update(current_version: Dict[str, Any], updates: Dict[str, Any]) -> Optional[str]:
    """
    Return an error message naming the violation, or None when the update is allowed.
    """
    if not isinstance(updates, dict) or "questions" not in updates:
        return None
    current_questions = current_version.get("questions") if isinstance(current_version, dict) else None
    if not isinstance(current_questions, list):
        current_questions = []
    updated_questions = updates["questions"]
    # Anything but a list would replace the frozen question list wholesale.
    if not isinstance(updated_questions, list):
        return MSG_COUNT_CHANGED

    if len(current_questions) != len(updated_questions):
        return MSG_COUNT_CHANGED

    for before, after in zip(current_questions, updated_questions):
        before = before if isinstance(before, dict) else {}
        after = after if isinstance(after, dict) else {}
        if before.get("id") != after.get("id"):
            return MSG_REORDERED
        if before.get("questionType") != after.get("questionType"):
            return f"Changing the type of question '{before.get('title')}' is not allowed."
    return None


__all__ = [
    "MSG_COUNT_CHANGED",
    "MSG_REORDERED",
    "PROTECTED_FIELDS",
    "strip_protected_fields",
    "validate_minor_update",
]
