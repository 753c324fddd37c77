"""Prompt templates for the AI completion endpoint."""

from ..models import ChatTurn, ContextRecord

DEFAULT_SYSTEM_PROMPT = """You are Native, an intelligent AI assistant for NativeIQ.
You help team members with:
- Summarizing discussions and decisions
- Identifying action items and tasks
- Analyzing business metrics and trends
- Providing insights on team communication
- Answering questions about the organization's data

Be concise, helpful, and professional. When providing recommendations, explain your reasoning.
Respond in a friendly but professional tone. Use bullet points and structured formatting when appropriate."""

CONTEXT_HEADER = """ORGANIZATION CONTEXT (strict source of truth):
The facts below were curated by this organization. Treat them as authoritative.
If a question concerns the organization and the answer is not in these facts,
say you don't have that information instead of guessing."""


def format_context_block(records: list[ContextRecord]) -> str | None:
    if not records:
        return None
    facts = "\n".join(f"- {record.title}: {record.content}" for record in records)
    return f"{CONTEXT_HEADER}\n\n{facts}"


def build_system_prompt(system_prompt: str | None, context_block: str | None) -> str:
    base = (system_prompt or "").strip() or DEFAULT_SYSTEM_PROMPT
    if not context_block:
        return base
    return f"{context_block}\n\n{base}"


def build_conversation(history: list[ChatTurn], message: str) -> str:
    """Flatten history and the new message into a single user turn."""
    parts = []
    if history:
        transcript = "\n\n".join(
            f"{'Model' if turn.role == 'assistant' else 'User'}: {turn.content}"
            for turn in history
        )
        parts.append(f"Previous conversation:\n{transcript}")
    parts.append(f"User: {message}")
    return "\n\n".join(parts)
