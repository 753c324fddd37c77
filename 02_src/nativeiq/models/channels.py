"""Channel data models."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Union


class ChannelType(str, Enum):
    """Kinds of message stream within an organization."""

    TEAM = "team"
    DIRECT = "direct"
    AI_ASSISTANT = "ai-assistant"


@dataclass(frozen=True)
class TeamMetadata:
    """Metadata of a multi-member team channel."""

    extra: dict = field(default_factory=dict)


@dataclass(frozen=True)
class DirectMetadata:
    """Metadata of a two-party direct channel."""

    participants: tuple[str, ...]
    participant_names: dict[str, str] = field(default_factory=dict)

    @property
    def participant_key(self) -> str:
        """Order-independent key identifying the participant pair."""
        return ":".join(sorted(self.participants))

    def other_participant(self, user_id: str) -> str | None:
        for participant in self.participants:
            if participant != user_id:
                return participant
        return None


@dataclass(frozen=True)
class AssistantMetadata:
    """Metadata of the organization's assistant channel."""

    extra: dict = field(default_factory=dict)


ChannelMetadata = Union[TeamMetadata, DirectMetadata, AssistantMetadata]


def parse_channel_metadata(channel_type: ChannelType, raw: dict | None) -> ChannelMetadata:
    """Build the metadata variant matching ``channel_type`` from a stored JSON object."""
    raw = dict(raw or {})
    if channel_type is ChannelType.DIRECT:
        participants = tuple(raw.pop("participants", []) or [])
        names = dict(raw.pop("participantNames", {}) or {})
        return DirectMetadata(participants=participants, participant_names=names)
    if channel_type is ChannelType.AI_ASSISTANT:
        return AssistantMetadata(extra=raw)
    return TeamMetadata(extra=raw)


def dump_channel_metadata(metadata: ChannelMetadata) -> dict:
    """Inverse of parse_channel_metadata."""
    if isinstance(metadata, DirectMetadata):
        return {
            "participants": list(metadata.participants),
            "participantNames": dict(metadata.participant_names),
        }
    return dict(metadata.extra)


_METADATA_TYPES = {
    ChannelType.TEAM: TeamMetadata,
    ChannelType.DIRECT: DirectMetadata,
    ChannelType.AI_ASSISTANT: AssistantMetadata,
}


@dataclass
class Channel:
    """A named message stream scoped to an organization."""

    id: str
    organization_id: str
    name: str
    type: ChannelType
    created_at: datetime
    description: str | None = None
    metadata: ChannelMetadata | None = None

    def __post_init__(self):
        self.type = ChannelType(self.type)
        if self.metadata is None:
            self.metadata = parse_channel_metadata(self.type, None)
        elif not isinstance(self.metadata, _METADATA_TYPES[self.type]):
            raise ValueError(
                f"{type(self.metadata).__name__} does not match channel type {self.type.value}"
            )
