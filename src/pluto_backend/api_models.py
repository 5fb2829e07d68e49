from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .models import Message, Role


class LinkItem(BaseModel):
    model_config = ConfigDict(extra="ignore")

    url: str | None = None


class InitializeRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    links: list[LinkItem] | None = None
    title: str | None = None

    def urls(self) -> list[str]:
        return [link.url for link in self.links or [] if link.url and link.url.strip()]


class ChatMessage(BaseModel):
    role: Literal["system", "user", "assistant"]
    content: str

    def to_message(self) -> Message:
        return Message(Role(self.role), self.content)


class ChatRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    foundation: str = ""
    history: list[ChatMessage]

    @field_validator("history")
    @classmethod
    def _validate_history(cls, v: list[ChatMessage]) -> list[ChatMessage]:
        if not v:
            raise ValueError("history must contain at least one message.")
        return v

    def messages(self) -> list[Message]:
        return [m.to_message() for m in self.history]


class DebugRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    code: str
    language: str = "python"

    @field_validator("code")
    @classmethod
    def _validate_code(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("code must be non-empty.")
        return v


class InitializeResponse(BaseModel):
    success: Literal[True] = True
    foundation: str


class ChatResponse(BaseModel):
    success: Literal[True] = True
    reply: str


class DebugResponse(BaseModel):
    success: Literal[True] = True
    trace: dict[str, Any] = Field(default_factory=dict)


class ErrorResponse(BaseModel):
    success: Literal[False] = False
    error: str


def make_error_response(message: str) -> dict[str, Any]:
    return ErrorResponse(error=message or "Unknown error").model_dump()
