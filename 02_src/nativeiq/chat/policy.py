"""When the assistant answers a message."""

from ..config import MENTION_TOKEN
from ..models import Channel, ChannelType


def mentions_assistant(content: str, token: str = MENTION_TOKEN) -> bool:
    return token.lower() in content.lower()


def should_invoke_assistant(channel: Channel, content: str, token: str = MENTION_TOKEN) -> bool:
    """Always in the assistant channel, on mention in team channels, never in DMs."""
    if channel.type is ChannelType.AI_ASSISTANT:
        return True
    if channel.type is ChannelType.TEAM:
        return mentions_assistant(content, token)
    return False
