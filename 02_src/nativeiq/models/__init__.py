"""Core data models for NativeIQ chat."""

from .assistant import AssistantCommand, AssistantReply, ChatTurn
from .channels import (
    AssistantMetadata,
    Channel,
    ChannelMetadata,
    ChannelType,
    DirectMetadata,
    TeamMetadata,
    dump_channel_metadata,
    parse_channel_metadata,
)
from .messages import Author, ChatMember, MemberRole, Message, parse_timestamp
from .organization import ContextRecord, Invite, Profile
from .tracing import TraceEvent
from .workspace import Insight, InsightSource, Task

__all__ = [
    # Channels
    "Channel",
    "ChannelType",
    "ChannelMetadata",
    "TeamMetadata",
    "DirectMetadata",
    "AssistantMetadata",
    "parse_channel_metadata",
    "dump_channel_metadata",
    # Messages
    "Message",
    "Author",
    "ChatMember",
    "MemberRole",
    "parse_timestamp",
    # Organization
    "Profile",
    "ContextRecord",
    "Invite",
    # Assistant
    "ChatTurn",
    "AssistantCommand",
    "AssistantReply",
    # Tracing
    "TraceEvent",
    # Workspace
    "Insight",
    "InsightSource",
    "Task",
]
