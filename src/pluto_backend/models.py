from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, TypeAlias


class Role(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class Message:
    role: Role
    content: str

    @classmethod
    def system(cls, content: str) -> Message:
        return cls(Role.SYSTEM, content)

    @classmethod
    def user(cls, content: str) -> Message:
        return cls(Role.USER, content)

    def as_payload(self) -> dict[str, str]:
        return {"role": self.role.value, "content": self.content}


@dataclass(frozen=True)
class CompletionRequest:
    model: str
    messages: tuple[Message, ...]
    temperature: float
    max_tokens: int
    top_p: float = 1.0
    json_mode: bool = False
    json_response_format: bool = False

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": self.model,
            "messages": [m.as_payload() for m in self.messages],
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "top_p": self.top_p,
            "stream": False,
        }
        if self.json_mode and self.json_response_format:
            payload["response_format"] = {"type": "json_object"}
        return payload


class FailureKind(str, Enum):
    TRANSIENT = "transient"
    RATE_LIMITED = "rate_limited"
    EXHAUSTED = "exhausted"
    FATAL = "fatal"


@dataclass(frozen=True)
class AttemptFailure:
    kind: FailureKind
    message: str
    model: str
    credential_index: int


@dataclass(frozen=True)
class CompletionResult:
    content: str
    model: str
    credential_index: int
    attempts: int
    latency_seconds: float
    parsed: dict[str, Any] | None = None
    failures: tuple[AttemptFailure, ...] = field(default=())


@dataclass(frozen=True)
class SourceText:
    url: str
    text: str
    title: str | None = None

    def render(self) -> str:
        label = self.title or "Untitled"
        return f"SOURCE: {label} ({self.url})\n{self.text}"


@dataclass(frozen=True)
class ExtractionError:
    url: str
    reason: str
    title: str | None = None


ExtractionOutcome: TypeAlias = SourceText | ExtractionError
