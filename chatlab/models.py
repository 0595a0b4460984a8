"""Dataclasses for conversations and comparison runs. No I/O, no deps."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from chatlab.backends.base import Backend


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return uuid.uuid4().hex


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class TokenUsage:
    input_tokens: int
    output_tokens: int


@dataclass(frozen=True)
class Message:
    role: Role
    content: str
    id: str = field(default_factory=_new_id)
    created_at: datetime = field(default_factory=_now)
    token_usage: TokenUsage | None = None
    is_summary: bool = False

    def __post_init__(self) -> None:
        if self.is_summary and self.role is not Role.ASSISTANT:
            raise ValueError("Summary messages must have the assistant role")

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "role": self.role.value,
            "content": self.content,
            "created_at": self.created_at.isoformat(),
            "token_usage": (
                {
                    "input_tokens": self.token_usage.input_tokens,
                    "output_tokens": self.token_usage.output_tokens,
                }
                if self.token_usage
                else None
            ),
            "is_summary": self.is_summary,
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "Message":
        if not isinstance(raw, dict):
            raise TypeError(f"message must be an object, got {type(raw).__name__}")
        usage_raw = raw.get("token_usage")
        usage = None
        if usage_raw is not None:
            if not isinstance(usage_raw, dict):
                raise TypeError("token_usage must be an object")
            usage = TokenUsage(
                input_tokens=int(usage_raw["input_tokens"]),
                output_tokens=int(usage_raw["output_tokens"]),
            )
        return cls(
            id=str(raw["id"]),
            role=Role(raw["role"]),
            content=str(raw["content"]),
            created_at=datetime.fromisoformat(raw["created_at"]),
            token_usage=usage,
            is_summary=bool(raw.get("is_summary", False)),
        )


@dataclass(frozen=True)
class InvokeOptions:
    system_prompt: str | None = None
    temperature: float | None = None
    max_output_tokens: int | None = None

    def __post_init__(self) -> None:
        if self.temperature is not None and not 0.0 <= self.temperature <= 1.0:
            raise ValueError(f"temperature must be within [0.0, 1.0], got {self.temperature}")
        if self.max_output_tokens is not None and self.max_output_tokens <= 0:
            raise ValueError(f"max_output_tokens must be positive, got {self.max_output_tokens}")


@dataclass(frozen=True)
class BackendReply:
    text: str
    input_tokens: int
    output_tokens: int


@dataclass(frozen=True)
class BackendDescriptor:
    id: str
    display_name: str
    backend: "Backend"


@dataclass(frozen=True)
class BackendResult:
    backend_id: str
    display_name: str
    response_text: str
    latency_sec: float
    input_tokens: int
    output_tokens: int
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict[str, Any]:
        return {
            "backend_id": self.backend_id,
            "display_name": self.display_name,
            "response_text": self.response_text,
            "latency_sec": self.latency_sec,
            "input_tokens": self.input_tokens,
            "output_tokens": self.output_tokens,
            "error": self.error,
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "BackendResult":
        if not isinstance(raw, dict):
            raise TypeError(f"result must be an object, got {type(raw).__name__}")
        return cls(
            backend_id=str(raw["backend_id"]),
            display_name=str(raw["display_name"]),
            response_text=str(raw["response_text"]),
            latency_sec=float(raw["latency_sec"]),
            input_tokens=int(raw["input_tokens"]),
            output_tokens=int(raw["output_tokens"]),
            error=raw.get("error"),
        )


class RunStatus(str, Enum):
    PENDING = "pending"
    RESULTS_READY = "results_ready"
    COMPLETE = "complete"


@dataclass
class ComparisonRun:
    query: str
    results: list[BackendResult] = field(default_factory=list)
    synthesis: str | None = None
    status: RunStatus = RunStatus.PENDING
    id: str = field(default_factory=_new_id)
    created_at: datetime = field(default_factory=_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "query": self.query,
            "results": [r.to_dict() for r in self.results],
            "synthesis": self.synthesis,
            "status": self.status.value,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "ComparisonRun":
        if not isinstance(raw, dict):
            raise TypeError(f"run must be an object, got {type(raw).__name__}")
        return cls(
            id=str(raw["id"]),
            query=str(raw["query"]),
            results=[BackendResult.from_dict(r) for r in raw["results"]],
            synthesis=raw.get("synthesis"),
            status=RunStatus(raw["status"]),
            created_at=datetime.fromisoformat(raw["created_at"]),
        )


@dataclass
class ConversationStats:
    summary_count: int = 0
    compressed_message_count: int = 0
