"""
Form and chat persistence used by the tools and the HTTP routes.

Thin services over `storage.FormRepository`: they own the row shapes for `forms`,
`form_versions` and `messages` and the draft/published pointer bookkeeping.
"""

from __future__ import annotations

import logging
import secrets
import uuid
from typing import Any, Dict, List, Optional, Tuple

from programs.form_agent.errors import FormValidationError, NotFoundError
from programs.form_schema.minor_update import validate_minor_update
from schemas.questions import FormSnapshot
from storage.base import FormRepository, StoreError

logger = logging.getLogger("form_agent.forms")

_ID_ALPHABET = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ_abcdefghijklmnopqrstuvwxyz-"

DEFAULT_TITLE = "Untitled Form"


def new_id(size: int = 10) -> str:
    return "".join(secrets.choice(_ID_ALPHABET) for _ in range(size))


def new_form_id() -> str:
    return f"form_{new_id()}"


def new_version_id() -> str:
    return str(uuid.uuid4())


def _as_list(value: Any) -> List[Dict[str, Any]]:
    if isinstance(value, list):
        return [q for q in value if isinstance(q, dict)]
    return []


def _as_dict(value: Any) -> Dict[str, Any]:
    return dict(value) if isinstance(value, dict) else {}


def build_snapshot(form_row: Dict[str, Any], version_row: Optional[Dict[str, Any]]) -> FormSnapshot:
    version_row = version_row or {}
    return FormSnapshot(
        id=str(form_row.get("id")),
        version_id=str(version_row.get("version_id") or form_row.get("current_draft_version_id") or new_version_id()),
        short_id=form_row.get("short_id"),
        title=str(version_row.get("title") or DEFAULT_TITLE),
        description=version_row.get("description") or None,
        questions=_as_list(version_row.get("questions")),
        settings=_as_dict(version_row.get("settings")),
        current_draft_version_id=form_row.get("current_draft_version_id"),
        current_published_version_id=form_row.get("current_published_version_id"),
    )


class FormService:
    def __init__(self, repo: FormRepository) -> None:
        self.repo = repo

    def create_new_form(self, form_id: str, user_id: str) -> Dict[str, Any]:
        short_id = new_id()
        logger.info("[FormService] creating form %s for user %s", form_id, user_id)
        self.repo.insert_form(
            {
                "id": form_id,
                "user_id": user_id,
                "short_id": short_id,
                "agent_state": {"formId": form_id, "userId": user_id, "status": "INITIALIZING"},
            }
        )
        version_id = new_version_id()
        try:
            self.repo.insert_version(
                {
                    "version_id": version_id,
                    "form_id": form_id,
                    "user_id": user_id,
                    "title": DEFAULT_TITLE,
                    "description": "",
                    "questions": [],
                    "settings": {},
                    "status": "draft",
                }
            )
            self.repo.update_form(form_id, {"current_draft_version_id": version_id})
        except StoreError:
            logger.error("[FormService] rolling back form %s after version insert failure", form_id)
            self.repo.delete_form(form_id)
            raise
        return {"formId": form_id, "shortId": short_id, "created": True}

    def ensure_form_exists(self, form_id: str, user_id: str) -> Dict[str, Any]:
        existing = self.repo.get_form(form_id)
        if existing is None:
            return self.create_new_form(form_id, user_id)
        return {"formId": form_id, "shortId": existing.get("short_id"), "created": False}

    def load_draft(self, form_id: str) -> Tuple[Dict[str, Any], Dict[str, Any]]:
        form_row = self.repo.get_form(form_id)
        if form_row is None or not form_row.get("current_draft_version_id"):
            raise NotFoundError(f"Failed to fetch form or current_draft_version_id for formId {form_id}")
        version_row = self.repo.get_version(str(form_row["current_draft_version_id"]))
        if version_row is None:
            raise NotFoundError(
                f"Failed to fetch form version data for version_id {form_row['current_draft_version_id']}"
            )
        return form_row, version_row

    def save_new_draft(
        self,
        form_id: str,
        user_id: str,
        *,
        title: str,
        description: Optional[str],
        questions: List[Dict[str, Any]],
        settings: Dict[str, Any],
    ) -> str:
        """
        Insert a new draft version and point the form at it. Returns the new version id.
        """
        version_id = new_version_id()
        self.repo.insert_version(
            {
                "version_id": version_id,
                "form_id": form_id,
                "user_id": user_id,
                "title": title,
                "description": description,
                "questions": questions,
                "settings": settings,
                "status": "draft",
            }
        )
        if self.repo.update_form(form_id, {"current_draft_version_id": version_id}) is None:
            raise StoreError(f"Failed to update form record {form_id} with new version {version_id}")
        return version_id

    def get_form_context(self, form_id: str) -> Optional[Dict[str, Any]]:
        form_row = self.repo.get_form(form_id)
        if form_row is None or not form_row.get("current_draft_version_id"):
            return None
        version_row = self.repo.get_version(str(form_row["current_draft_version_id"]))
        if version_row is None:
            return None

        summary: List[Dict[str, Any]] = []
        for index, q in enumerate(_as_list(version_row.get("questions"))):
            item: Dict[str, Any] = {
                "questionNumber": index + 1,
                "id": q.get("id"),
                "type": q.get("questionType"),
                "title": q.get("title"),
            }
            options = q.get("options")
            if isinstance(options, list):
                item["options"] = [
                    (o.get("label") or o.get("value")) if isinstance(o, dict) else o for o in options
                ]
            rating = q.get("ratingConfig")
            if isinstance(rating, dict):
                item["ratingConfig"] = {"min": rating.get("min"), "max": rating.get("max")}
            summary.append(item)

        return {
            "formId": form_id,
            "shortId": form_row.get("short_id"),
            "title": version_row.get("title"),
            "description": version_row.get("description"),
            "questions": summary,
            "settings": _as_dict(version_row.get("settings")),
        }

    def create_form_with_draft(
        self,
        user_id: str,
        *,
        title: str,
        description: Optional[str],
        questions: List[Dict[str, Any]],
        settings: Dict[str, Any],
    ) -> Dict[str, Any]:
        """
        Insert a form plus its first draft. Partial rows are deleted when a later write fails.
        """
        form_id = new_form_id()
        self.repo.insert_form({"id": form_id, "user_id": user_id, "short_id": new_id(7)})
        version_id = new_version_id()
        try:
            self.repo.insert_version(
                {
                    "version_id": version_id,
                    "form_id": form_id,
                    "user_id": user_id,
                    "title": title,
                    "description": description,
                    "questions": questions,
                    "settings": settings,
                    "status": "draft",
                }
            )
        except StoreError:
            self.repo.delete_form(form_id)
            raise
        try:
            if self.repo.update_form(form_id, {"current_draft_version_id": version_id}) is None:
                raise StoreError("Failed to link draft version to form.")
        except StoreError:
            self.repo.delete_version(version_id)
            self.repo.delete_form(form_id)
            raise
        return {"form_id": form_id, "form_version_id": version_id, "title": title}

    def apply_minor_update(self, form_id: str, updates: Dict[str, Any]) -> Dict[str, Any]:
        """
        Patch the draft, or the published version when there is no draft.

        Published versions go through `validate_minor_update`; a violation raises
        `FormValidationError` carrying the guard's message.
        """
        form_row = self.repo.get_form(form_id)
        if form_row is None:
            raise NotFoundError("Form not found")

        if form_row.get("current_draft_version_id"):
            target_id, published = str(form_row["current_draft_version_id"]), False
        elif form_row.get("current_published_version_id"):
            target_id, published = str(form_row["current_published_version_id"]), True
        else:
            raise NotFoundError("No active version to update")

        if published:
            current = self.repo.get_version(target_id)
            if current is None or current.get("status") != "published":
                raise StoreError("Failed to fetch current published version for validation")
            error = validate_minor_update(current, updates)
            if error:
                raise FormValidationError(error)

        updated = self.repo.update_version(target_id, updates)
        if updated is None:
            raise NotFoundError(f"Form version {target_id} not found")
        return updated

    def get_display_version(self, form_id: str) -> Tuple[Dict[str, Any], Dict[str, Any]]:
        """
        Published version when present, else the draft. Raises NotFoundError.
        """
        form_row = self.repo.get_form(form_id)
        if form_row is None:
            raise NotFoundError("Form not found")
        for pointer in ("current_published_version_id", "current_draft_version_id"):
            version_id = form_row.get(pointer)
            if not version_id:
                continue
            version_row = self.repo.get_version(str(version_id))
            if version_row is not None:
                return form_row, version_row
        raise NotFoundError("Form version not found")


class ChatService:
    def __init__(self, repo: FormRepository) -> None:
        self.repo = repo

    def save_message(
        self,
        form_id: str,
        user_id: str,
        *,
        role: str,
        content: str,
        parts: Optional[List[Dict[str, Any]]] = None,
    ) -> None:
        """
        Persist one chat message. Only a failed user-message write is raised; assistant
        writes are logged and dropped so a storage hiccup never breaks the reply.
        """
        try:
            self.repo.insert_message(
                {"form_id": form_id, "user_id": user_id, "role": role, "content": content or "", "parts": parts}
            )
        except StoreError as e:
            logger.error("[ChatService] Error saving %s message for form %s: %s", role, form_id, e)
            if role == "user":
                raise

    def get_chat_history(self, form_id: str) -> List[Dict[str, Any]]:
        return self.repo.list_messages(form_id)


__all__ = [
    "DEFAULT_TITLE",
    "ChatService",
    "FormService",
    "build_snapshot",
    "new_form_id",
    "new_id",
    "new_version_id",
]
