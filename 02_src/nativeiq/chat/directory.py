"""Channel Directory: channels and member roster of an organization."""

import uuid
from datetime import datetime, timezone

from ..errors import FetchError, SendError
from ..logging_config import get_logger
from ..models import Channel, ChannelType, ChatMember, DirectMetadata
from ..storage import IStorage

logger = get_logger(__name__)


class ChannelDirectory:
    """Loads channels and members; opens direct channels."""

    def __init__(self, storage: IStorage):
        self._storage = storage

    async def list_channels(self, organization_id: str) -> list[Channel]:
        """Channels in ascending creation order."""
        try:
            return await self._storage.list_channels(organization_id)
        except Exception as e:
            logger.error(
                "Failed to fetch channels: %s", e, extra={"organization_id": organization_id}
            )
            raise FetchError(f"Failed to fetch channels: {e}") from e

    async def list_members(self, organization_id: str) -> list[ChatMember]:
        """Member roster; empty when it cannot be loaded."""
        try:
            return await self._storage.list_members(organization_id)
        except Exception as e:
            logger.warning(
                "Failed to fetch members: %s", e, extra={"organization_id": organization_id}
            )
            return []

    async def open_direct_channel(
        self, organization_id: str, me: ChatMember, other: ChatMember
    ) -> Channel:
        """Return the DM channel for the pair, creating it when missing."""
        if me.id == other.id:
            raise ValueError("A direct channel needs two distinct participants")

        channel = Channel(
            id=str(uuid.uuid4()),
            organization_id=organization_id,
            name=f"{display_label(me)} & {display_label(other)}",
            type=ChannelType.DIRECT,
            created_at=datetime.now(timezone.utc),
            metadata=DirectMetadata(
                participants=(me.id, other.id),
                participant_names={me.id: display_label(me), other.id: display_label(other)},
            ),
        )
        try:
            return await self._storage.save_channel(channel)
        except Exception as e:
            logger.error(
                "Failed to open direct channel: %s", e, extra={"organization_id": organization_id}
            )
            raise SendError(f"Failed to open direct channel: {e}") from e


def display_label(member: ChatMember) -> str:
    return member.full_name or "Unknown"


def display_name(channel: Channel, current_user_id: str | None) -> str:
    """Name shown for a channel; a DM shows the other participant."""
    metadata = channel.metadata
    if isinstance(metadata, DirectMetadata) and current_user_id:
        other = metadata.other_participant(current_user_id)
        if other and metadata.participant_names.get(other):
            return metadata.participant_names[other]
    return channel.name


def initials(name: str | None) -> str:
    """Up to two uppercase initials, "?" for an empty name."""
    if not name or not name.strip():
        return "?"
    return "".join(part[0] for part in name.split())[:2].upper()
