"""
Process-wide collaborators for the routes, injected with `Depends` so tests can swap them
through `app.dependency_overrides`.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from fastapi import Depends, Request

from api.auth import AuthContext, Authenticator
from api.usage_limits import UsageLimiter
from programs.form_generator.program import AgentPrograms, build_agent_programs
from storage import get_repository
from storage.base import FormRepository


def get_repo() -> FormRepository:
    return get_repository()


@lru_cache(maxsize=1)
def _programs() -> Optional[AgentPrograms]:
    return build_agent_programs()


def get_programs() -> Optional[AgentPrograms]:
    return _programs()


@lru_cache(maxsize=1)
def _authenticator() -> Authenticator:
    return Authenticator()


def get_authenticator() -> Authenticator:
    return _authenticator()


@lru_cache(maxsize=1)
def _usage_limiter() -> UsageLimiter:
    return UsageLimiter()


def get_usage_limiter() -> UsageLimiter:
    return _usage_limiter()


def require_auth(request: Request, authenticator: Authenticator = Depends(get_authenticator)) -> AuthContext:
    return authenticator.authenticate(request)
