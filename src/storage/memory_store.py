from __future__ import annotations

import copy
import itertools
import threading
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from storage.base import FormRepository


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class InMemoryFormRepository(FormRepository):
    """
    Process-local store with the same contract as the Supabase one.

    Rows are deep-copied in and out so callers never share mutable state with the store.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._forms: Dict[str, Dict[str, Any]] = {}
        self._versions: Dict[str, Dict[str, Any]] = {}
        self._messages: List[Dict[str, Any]] = []
        self._message_ids = itertools.count(1)

    def get_form(self, form_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            row = self._forms.get(form_id)
            return copy.deepcopy(row) if row is not None else None

    def insert_form(self, row: Dict[str, Any]) -> Dict[str, Any]:
        with self._lock:
            stored = {"created_at": _now(), **copy.deepcopy(row)}
            stored["updated_at"] = stored["created_at"]
            self._forms[str(stored["id"])] = stored
            return copy.deepcopy(stored)

    def update_form(self, form_id: str, patch: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        with self._lock:
            row = self._forms.get(form_id)
            if row is None:
                return None
            row.update(copy.deepcopy(patch))
            row["updated_at"] = _now()
            return copy.deepcopy(row)

    def delete_form(self, form_id: str) -> None:
        with self._lock:
            self._forms.pop(form_id, None)

    def get_version(self, version_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            row = self._versions.get(version_id)
            return copy.deepcopy(row) if row is not None else None

    def insert_version(self, row: Dict[str, Any]) -> Dict[str, Any]:
        with self._lock:
            stored = {"created_at": _now(), **copy.deepcopy(row)}
            stored["updated_at"] = stored["created_at"]
            self._versions[str(stored["version_id"])] = stored
            return copy.deepcopy(stored)

    def update_version(self, version_id: str, patch: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        with self._lock:
            row = self._versions.get(version_id)
            if row is None:
                return None
            row.update(copy.deepcopy(patch))
            row["updated_at"] = _now()
            return copy.deepcopy(row)

    def delete_version(self, version_id: str) -> None:
        with self._lock:
            self._versions.pop(version_id, None)

    def insert_message(self, row: Dict[str, Any]) -> Dict[str, Any]:
        with self._lock:
            stored = {"id": next(self._message_ids), "created_at": _now(), **copy.deepcopy(row)}
            self._messages.append(stored)
            return copy.deepcopy(stored)

    def list_messages(self, form_id: str) -> List[Dict[str, Any]]:
        with self._lock:
            rows = [m for m in self._messages if m.get("form_id") == form_id]
            # Stable sort keeps insertion order for equal timestamps.
            rows.sort(key=lambda m: str(m.get("created_at") or ""))
            return copy.deepcopy(rows)


__all__ = ["InMemoryFormRepository"]
