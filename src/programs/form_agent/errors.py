from __future__ import annotations

from typing import Any, List, Optional


class FormAgentError(Exception):
    """Base class for everything the form agent raises on purpose."""

    code = "form_agent_error"


class FormValidationError(FormAgentError):
    code = "validation_error"

    def __init__(self, message: str, *, issues: Optional[List[str]] = None, payload: Any = None) -> None:
        super().__init__(message)
        self.issues: List[str] = list(issues or [])
        self.payload = payload

    def __str__(self) -> str:
        base = super().__str__()
        if not self.issues:
            return base
        return f"{base} {'; '.join(self.issues[:5])}"


class TransportError(FormAgentError):
    """The event channel is closed; no further events can be delivered."""

    code = "transport_error"


class ToolExecutionError(FormAgentError):
    code = "tool_error"

    def __init__(self, tool_name: str, message: str) -> None:
        super().__init__(message)
        self.tool_name = tool_name


class AuthorizationError(FormAgentError):
    code = "unauthorized"

    def __init__(self, message: str = "Unauthorized", *, status_code: int = 401) -> None:
        super().__init__(message)
        self.status_code = int(status_code)


class NotFoundError(FormAgentError):
    code = "not_found"


__all__ = [
    "AuthorizationError",
    "FormAgentError",
    "FormValidationError",
    "NotFoundError",
    "ToolExecutionError",
    "TransportError",
]
