"""Chat module."""

from .directory import ChannelDirectory, display_name, initials
from .policy import mentions_assistant, should_invoke_assistant
from .session import ChatSession, MessageListener, SessionState
from .store import MessageStore

__all__ = [
    "ChannelDirectory",
    "MessageStore",
    "ChatSession",
    "MessageListener",
    "SessionState",
    "display_name",
    "initials",
    "mentions_assistant",
    "should_invoke_assistant",
]
