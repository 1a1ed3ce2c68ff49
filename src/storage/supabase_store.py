"""
Supabase-backed form repository.

Reads return None / [] when a row is missing; any client error is raised as `StoreError`
so tool executors can report it as a structured failure.
"""

from __future__ import annotations

import logging
import os
from typing import Any, Dict, List, Optional

from supabase import Client, create_client

from storage.base import FormRepository, StoreError

logger = logging.getLogger("storage.supabase")

_client: Optional[Client] = None


def get_supabase_client() -> Optional[Client]:
    """Get or create Supabase client (singleton)."""
    global _client

    if _client is not None:
        return _client

    url = os.getenv("SUPABASE_URL") or os.getenv("NEXT_PUBLIC_SUPABASE_URL")
    # Service role key for backend (has full access), then anon key
    key = os.getenv("SUPABASE_SERVICE_ROLE_KEY") or os.getenv("SUPABASE_ANON_KEY")

    if not url or not key:
        return None

    try:
        _client = create_client(url, key)
        return _client
    except Exception as e:
        logger.warning("[Supabase] Failed to create client: %s", e)
        return None


def _first(result: Any) -> Optional[Dict[str, Any]]:
    rows = getattr(result, "data", None) or []
    if rows and isinstance(rows[0], dict):
        return rows[0]
    return None


class SupabaseFormRepository(FormRepository):
    def __init__(self, client: Client) -> None:
        self.client = client

    def _run(self, what: str, query: Any) -> Any:
        try:
            return query.execute()
        except Exception as e:
            logger.error("[Supabase] %s failed: %s", what, e)
            raise StoreError(f"{what} failed: {e}") from e

    def get_form(self, form_id: str) -> Optional[Dict[str, Any]]:
        return _first(self._run("select forms", self.client.table("forms").select("*").eq("id", form_id)))

    def insert_form(self, row: Dict[str, Any]) -> Dict[str, Any]:
        return _first(self._run("insert forms", self.client.table("forms").insert(row))) or dict(row)

    def update_form(self, form_id: str, patch: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        return _first(self._run("update forms", self.client.table("forms").update(patch).eq("id", form_id)))

    def delete_form(self, form_id: str) -> None:
        self._run("delete forms", self.client.table("forms").delete().eq("id", form_id))

    def get_version(self, version_id: str) -> Optional[Dict[str, Any]]:
        return _first(
            self._run(
                "select form_versions",
                self.client.table("form_versions").select("*").eq("version_id", version_id),
            )
        )

    def insert_version(self, row: Dict[str, Any]) -> Dict[str, Any]:
        return _first(self._run("insert form_versions", self.client.table("form_versions").insert(row))) or dict(row)

    def update_version(self, version_id: str, patch: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        return _first(
            self._run(
                "update form_versions",
                self.client.table("form_versions").update(patch).eq("version_id", version_id),
            )
        )

    def delete_version(self, version_id: str) -> None:
        self._run("delete form_versions", self.client.table("form_versions").delete().eq("version_id", version_id))

    def insert_message(self, row: Dict[str, Any]) -> Dict[str, Any]:
        return _first(self._run("insert messages", self.client.table("messages").insert(row))) or dict(row)

    def list_messages(self, form_id: str) -> List[Dict[str, Any]]:
        result = self._run(
            "select messages",
            self.client.table("messages").select("*").eq("form_id", form_id).order("created_at"),
        )
        return [r for r in (result.data or []) if isinstance(r, dict)]


__all__ = ["SupabaseFormRepository", "get_supabase_client"]
