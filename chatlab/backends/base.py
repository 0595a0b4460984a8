"""Abstract base and error taxonomy for all assistant backends."""

from abc import ABC, abstractmethod
from collections.abc import Sequence

from chatlab.models import BackendReply, InvokeOptions, Message, Role

SUMMARY_CONTEXT_PREFIX = "Summary of earlier conversation:"


class BackendError(Exception):
    """Raised when a backend call fails."""

    def __init__(self, backend_name: str, message: str) -> None:
        self.backend_name = backend_name
        self.message = message
        super().__init__(f"[{backend_name}] {message}")


class Unauthenticated(BackendError):
    """Missing or invalid credential."""


class Unreachable(BackendError):
    """Transport failure or timeout."""


class Rejected(BackendError):
    """Backend answered with a non-success status and a decodable error body."""

    def __init__(self, backend_name: str, status: int, message: str) -> None:
        self.status = status
        super().__init__(backend_name, f"HTTP {status}: {message}")


class Malformed(BackendError):
    """Response could not be decoded into text and usage."""


def error_message_from_body(body: object, fallback: str) -> str:
    """Pull a human-readable message out of a decoded error body.

    Handles {"error": {"message": ...}}, {"message": ...} and the
    {"error": "..."} shape used by the Hugging Face router.
    """
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str) and error:
            return error
        if body.get("message"):
            return str(body["message"])
    return fallback


def to_chat_messages(history: Sequence[Message]) -> list[dict[str, str]]:
    """Convert a conversation log into alternating wire turns.

    Summaries are sent as user-side context so a compacted log never opens
    with an assistant turn; consecutive same-role turns are merged.
    """
    turns: list[dict[str, str]] = []
    for msg in history:
        if msg.is_summary:
            role = Role.USER.value
            content = f"{SUMMARY_CONTEXT_PREFIX}\n{msg.content}"
        else:
            role = msg.role.value
            content = msg.content
        if turns and turns[-1]["role"] == role:
            turns[-1]["content"] += f"\n\n{content}"
        else:
            turns.append({"role": role, "content": content})
    return turns


class Backend(ABC):
    """Abstract base for all assistant backends."""

    @abstractmethod
    def name(self) -> str:
        """Return the short backend name (e.g. 'claude', 'llama')."""
        ...

    @abstractmethod
    def model_string(self) -> str:
        """Return the actual model identifier string."""
        ...

    @abstractmethod
    async def invoke(self, history: Sequence[Message], options: InvokeOptions) -> BackendReply:
        """Send the conversation and return the whole reply.

        Args:
            history: Ordered messages, oldest first. The last one is the
                turn being answered.
            options: System prompt, temperature and output cap for this call.

        Returns:
            BackendReply with text and token usage.

        Raises:
            BackendError: One of Unauthenticated, Unreachable, Rejected or
                Malformed. No retries are attempted.
        """
        ...
