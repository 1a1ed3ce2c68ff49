"""
`storage`

Form/version/message persistence behind the `FormRepository` contract.
"""

from __future__ import annotations

import logging
import os
from typing import Optional

from storage.base import FormRepository, StoreError
from storage.memory_store import InMemoryFormRepository

logger = logging.getLogger("storage")

_repository: Optional[FormRepository] = None


def get_repository() -> FormRepository:
    """
    Process-wide repository.

    `FORMCRAFT_STORE=memory` forces the in-memory store; otherwise Supabase is used when
    `SUPABASE_URL` + key are configured.
    """
    global _repository
    if _repository is not None:
        return _repository

    backend = (os.getenv("FORMCRAFT_STORE") or "").strip().lower()
    if backend != "memory":
        from storage.supabase_store import SupabaseFormRepository, get_supabase_client

        client = get_supabase_client()
        if client is not None:
            _repository = SupabaseFormRepository(client)
            return _repository
        logger.warning("[storage] Supabase not configured; using in-memory store")

    _repository = InMemoryFormRepository()
    return _repository


def set_repository(repo: Optional[FormRepository]) -> None:
    global _repository
    _repository = repo


__all__ = ["FormRepository", "InMemoryFormRepository", "StoreError", "get_repository", "set_repository"]
