"""
Request authentication.

Two sources, checked in order:
  - `Authorization: Bearer <jwt>`: resolved through Supabase auth when a client is configured
  - `X-User-Id` (+ optional `X-Guest: 1`): trusted header set by the fronting app, honoured
    only when `FORMCRAFT_TRUST_USER_HEADER=1`

Anything else raises `AuthorizationError` before the route body runs.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

from fastapi import Request

from programs.form_agent.errors import AuthorizationError
from programs.form_agent.lm import env_bool

logger = logging.getLogger("api.auth")

TokenVerifier = Callable[[str], Optional["AuthContext"]]


@dataclass(frozen=True)
class AuthContext:
    user_id: str
    is_guest: bool = False

    def as_dict(self) -> dict:
        return {"userId": self.user_id, "isGuest": self.is_guest}


def _truthy(value: Optional[str]) -> bool:
    return (value or "").strip().lower() in {"1", "true", "yes", "y", "on"}


def supabase_token_verifier(token: str) -> Optional[AuthContext]:
    from storage.supabase_store import get_supabase_client

    client = get_supabase_client()
    if client is None:
        return None
    try:
        resp = client.auth.get_user(token)
    except Exception as e:
        logger.info("[auth] token rejected: %s", e)
        return None
    user: Any = getattr(resp, "user", None)
    user_id = str(getattr(user, "id", "") or "")
    if not user_id:
        return None
    return AuthContext(user_id=user_id, is_guest=bool(getattr(user, "is_anonymous", False)))


class Authenticator:
    def __init__(self, *, verify_token: Optional[TokenVerifier] = None, trust_user_header: Optional[bool] = None) -> None:
        self.verify_token = verify_token or supabase_token_verifier
        self.trust_user_header = (
            env_bool("FORMCRAFT_TRUST_USER_HEADER", default=False) if trust_user_header is None else trust_user_header
        )

    def authenticate(self, request: Request) -> AuthContext:
        header = (request.headers.get("authorization") or "").strip()
        if header:
            scheme, _, token = header.partition(" ")
            if scheme.lower() != "bearer" or not token.strip():
                raise AuthorizationError("Malformed Authorization header", status_code=401)
            ctx = self.verify_token(token.strip())
            if ctx is None:
                raise AuthorizationError("Invalid or expired token", status_code=401)
            return ctx

        user_id = (request.headers.get("x-user-id") or "").strip()
        if user_id and self.trust_user_header:
            return AuthContext(user_id=user_id, is_guest=_truthy(request.headers.get("x-guest")))

        raise AuthorizationError("Authentication required", status_code=401)

    def __call__(self, request: Request) -> AuthContext:
        return self.authenticate(request)
