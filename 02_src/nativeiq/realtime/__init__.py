"""Realtime module."""

from .hub import InsertHandler, IRealtimeHub, RealtimeHub, RealtimeSubscription
from .subscriptions import AuthorLookup, MessageHandler, RealtimeSubscriptionManager

__all__ = [
    "InsertHandler",
    "IRealtimeHub",
    "RealtimeHub",
    "RealtimeSubscription",
    "AuthorLookup",
    "MessageHandler",
    "RealtimeSubscriptionManager",
]
