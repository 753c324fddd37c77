"""Assistant request models."""

from dataclasses import dataclass, replace
from typing import Literal


@dataclass(frozen=True)
class ChatTurn:
    """One entry of the history window sent to the AI endpoint."""

    role: Literal["user", "assistant"]
    content: str

    def to_dict(self) -> dict:
        return {"role": self.role, "content": self.content}


@dataclass(frozen=True)
class AssistantCommand:
    """A retryable request for an assistant response."""

    prompt: str
    channel_id: str
    attempt: int = 1

    def retry(self) -> "AssistantCommand":
        return replace(self, attempt=self.attempt + 1)


@dataclass(frozen=True)
class AssistantReply:
    """Outcome of one responder call.

    ``error`` is set when ``content`` came from the local fallback.
    """

    content: str
    error: Exception | None = None

    @property
    def is_fallback(self) -> bool:
        return self.error is not None
