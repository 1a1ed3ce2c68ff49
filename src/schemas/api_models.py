from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ChatMessage(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: Optional[str] = None
    role: Literal["user", "assistant", "system", "tool"]
    content: Any = ""
    parts: Optional[List[Dict[str, Any]]] = None

    def text(self) -> str:
        if isinstance(self.content, str):
            return self.content
        if isinstance(self.content, list):
            # Multi-part content: keep the text parts only.
            return "".join(
                str(p.get("text") or "") for p in self.content if isinstance(p, dict) and p.get("type") == "text"
            )
        return str(self.content or "")


class ChatOptions(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    temperature: Optional[float] = None
    max_tokens: Optional[int] = Field(default=None, alias="maxTokens")


class ChatRequest(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    messages: List[ChatMessage] = Field(min_length=1)
    form_id: Optional[str] = Field(default=None, alias="formId")
    options: Optional[ChatOptions] = None

    @field_validator("form_id", mode="before")
    @classmethod
    def _blank_form_id(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v

    def wire_messages(self) -> List[Dict[str, Any]]:
        return [{"role": m.role, "content": m.text()} for m in self.messages]


class CreateFormRequest(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    user_prompt: str = Field(min_length=1, alias="userPrompt")


class CreateFormResponse(BaseModel):
    success: bool = True
    form_id: str
    form_version_id: str
    title: str


__all__ = [
    "ChatMessage",
    "ChatOptions",
    "ChatRequest",
    "CreateFormRequest",
    "CreateFormResponse",
]
