"""Message-related data models."""

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Literal


class MemberRole(str, Enum):
    """Role of a member within an organization."""

    OWNER = "owner"
    ADMIN = "admin"
    MEMBER = "member"


@dataclass
class Author:
    """Identity joined onto a user-authored message."""

    id: str
    full_name: str | None = None
    avatar_url: str | None = None


@dataclass
class ChatMember:
    """A member of the organization roster."""

    id: str
    full_name: str | None
    avatar_url: str | None
    role: MemberRole = MemberRole.MEMBER

    def __post_init__(self):
        self.role = MemberRole(self.role)


def parse_timestamp(value: datetime | str) -> datetime:
    """Parse a stored creation time, assuming UTC when naive."""
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


@dataclass
class Message:
    """A single chat message.

    ``author_id`` is None exactly when the assistant wrote the message.
    """

    id: str
    channel_id: str
    author_id: str | None
    content: str
    is_ai_response: bool
    created_at: datetime
    metadata: dict = field(default_factory=dict)
    author: Author | None = None

    def __post_init__(self):
        self.created_at = parse_timestamp(self.created_at)
        self.is_ai_response = bool(self.is_ai_response)
        if self.is_ai_response != (self.author_id is None):
            raise ValueError(
                f"message {self.id}: assistant messages must have no author "
                "and user messages must have one"
            )

    @property
    def role(self) -> Literal["assistant", "user"]:
        return "assistant" if self.is_ai_response else "user"

    @property
    def timestamp(self) -> datetime:
        return self.created_at

    @classmethod
    def from_row(cls, row: dict, author: Author | None = None) -> "Message":
        """Build a Message from a ``messages`` table row or realtime payload."""
        metadata = row.get("metadata") or {}
        if isinstance(metadata, str):
            metadata = json.loads(metadata)
        embedded = row.get("author")
        if author is None and isinstance(embedded, dict):
            author = Author(**embedded)
        return cls(
            id=row["id"],
            channel_id=row["channel_id"],
            author_id=row.get("author_id"),
            content=row["content"],
            is_ai_response=row.get("is_ai_response", False),
            created_at=row["created_at"],
            metadata=metadata,
            author=author,
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "channel_id": self.channel_id,
            "author_id": self.author_id,
            "content": self.content,
            "is_ai_response": self.is_ai_response,
            "metadata": self.metadata,
            "created_at": self.created_at.isoformat(),
            "role": self.role,
            "author": (
                {
                    "id": self.author.id,
                    "full_name": self.author.full_name,
                    "avatar_url": self.author.avatar_url,
                }
                if self.author
                else None
            ),
        }
