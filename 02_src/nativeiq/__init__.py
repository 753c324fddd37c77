"""NativeIQ chat core."""

from .app import Application, IApplication
from .assistant import AssistantResponder, ContextAssembler, IAssistantResponder
from .chat import ChannelDirectory, ChatSession, MessageStore, SessionState
from .config import ChatSettings
from .errors import (
    AssistantError,
    ChatError,
    FetchError,
    SendError,
    SubscriptionError,
)
from .llm import ILLMProvider, LLMProvider
from .models import (
    AssistantCommand,
    Channel,
    ChannelType,
    ChatMember,
    Message,
    Profile,
)
from .realtime import IRealtimeHub, RealtimeHub, RealtimeSubscriptionManager
from .storage import IStorage, Storage
from .tracker import ITracker, Tracker

__all__ = [
    # Application
    "Application",
    "IApplication",
    "ChatSettings",
    # Models
    "Channel",
    "ChannelType",
    "ChatMember",
    "Message",
    "Profile",
    "AssistantCommand",
    # Errors
    "ChatError",
    "FetchError",
    "SendError",
    "AssistantError",
    "SubscriptionError",
    # Components
    "IStorage",
    "Storage",
    "IRealtimeHub",
    "RealtimeHub",
    "RealtimeSubscriptionManager",
    "ITracker",
    "Tracker",
    "ILLMProvider",
    "LLMProvider",
    "ChannelDirectory",
    "MessageStore",
    "ChatSession",
    "SessionState",
    "IAssistantResponder",
    "AssistantResponder",
    "ContextAssembler",
]
