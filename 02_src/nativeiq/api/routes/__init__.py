"""API routes."""

from .chat import create_chat_router
from .insights import create_insights_router
from .invites import create_invites_router
from .observability import create_observability_router
from .sessions import create_sessions_router
from .tasks import create_tasks_router

__all__ = [
    "create_chat_router",
    "create_insights_router",
    "create_invites_router",
    "create_observability_router",
    "create_sessions_router",
    "create_tasks_router",
]
