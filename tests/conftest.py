from __future__ import annotations

import sys
from pathlib import Path

import pytest


_REPO_ROOT = Path(__file__).resolve().parents[1]
_SRC = _REPO_ROOT / "src"
for _p in (_REPO_ROOT, _SRC):
    if _p.exists() and str(_p) not in sys.path:
        sys.path.insert(0, str(_p))


@pytest.fixture(autouse=True)
def _memory_store(monkeypatch):
    """Every test runs against a fresh in-memory repository, never Supabase."""
    from storage import InMemoryFormRepository, set_repository

    monkeypatch.setenv("FORMCRAFT_STORE", "memory")
    repo = InMemoryFormRepository()
    set_repository(repo)
    yield repo
    set_repository(None)
