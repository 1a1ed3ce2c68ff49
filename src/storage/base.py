"""
Relational store contract used by the tools and the HTTP layer.

Rows are plain dicts shaped like the `forms`, `form_versions` and `messages` tables.
Writes are last-write-wins at the row level; there is no optimistic concurrency token.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional


class StoreError(Exception):
    """A read or write against the backing store failed."""


class FormRepository:
    # forms
    def get_form(self, form_id: str) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    def insert_form(self, row: Dict[str, Any]) -> Dict[str, Any]:
        raise NotImplementedError

    def update_form(self, form_id: str, patch: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    def delete_form(self, form_id: str) -> None:
        raise NotImplementedError

    # form_versions
    def get_version(self, version_id: str) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    def insert_version(self, row: Dict[str, Any]) -> Dict[str, Any]:
        raise NotImplementedError

    def update_version(self, version_id: str, patch: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    def delete_version(self, version_id: str) -> None:
        raise NotImplementedError

    # messages
    def insert_message(self, row: Dict[str, Any]) -> Dict[str, Any]:
        raise NotImplementedError

    def list_messages(self, form_id: str) -> List[Dict[str, Any]]:
        """Messages for a form ordered by `created_at` ascending."""
        raise NotImplementedError


__all__ = ["FormRepository", "StoreError"]
