"""Assistant module."""

from .context import ContextAssembler
from .fallback import KEYWORD_RESPONSES, NO_INFORMATION_RESPONSE, fallback_response
from .prompts import DEFAULT_SYSTEM_PROMPT, build_conversation, build_system_prompt
from .responder import AssistantResponder, IAssistantResponder

__all__ = [
    "AssistantResponder",
    "IAssistantResponder",
    "ContextAssembler",
    "KEYWORD_RESPONSES",
    "NO_INFORMATION_RESPONSE",
    "fallback_response",
    "DEFAULT_SYSTEM_PROMPT",
    "build_conversation",
    "build_system_prompt",
]
