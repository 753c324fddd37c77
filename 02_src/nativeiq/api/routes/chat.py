"""AI chat completion route."""

from typing import Literal

from fastapi import APIRouter, Header
from pydantic import BaseModel, Field

from ...app import Application
from ...assistant import build_conversation, build_system_prompt
from ...logging_config import get_logger
from ...models import ChatTurn
from ..errors import error_response

logger = get_logger(__name__)


class ChatTurnModel(BaseModel):
    """One prior turn of the conversation."""

    role: Literal["user", "assistant", "system"]
    content: str


class ChatRequest(BaseModel):
    """Request model for an assistant completion."""

    message: str = ""
    history: list[ChatTurnModel] = Field(default_factory=list)
    systemPrompt: str | None = None


class UsageModel(BaseModel):
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int


class ChatResponse(BaseModel):
    """Response model for an assistant completion."""

    message: str
    usage: UsageModel


def create_chat_router(app: Application) -> APIRouter:
    """Create chat router."""
    router = APIRouter(prefix="/api", tags=["chat"])

    @router.post("/chat", response_model=ChatResponse)
    async def complete_chat(
        request: ChatRequest,
        x_user_id: str | None = Header(None),
    ):
        """Answer a message, grounded in the caller's organization context."""
        if not request.message.strip():
            return error_response(400, "BAD_REQUEST", "Message is required")

        profile = await app.storage.get_profile(x_user_id) if x_user_id else None
        if profile is None:
            return error_response(401, "UNAUTHORIZED", "Authentication required")
        if not profile.organization_id:
            return error_response(403, "NO_ORGANIZATION", "User not in an organization")

        if app.llm is None:
            return error_response(500, "SERVER_CONFIG", "AI provider API key not configured")

        try:
            context_block = await app.context.assemble(profile.organization_id)
        except Exception as e:
            logger.warning(
                "Context assembly failed, answering ungrounded: %s",
                e,
                extra={"organization_id": profile.organization_id},
            )
            context_block = None

        # System turns are covered by the system prompt
        history = [
            ChatTurn(role=turn.role, content=turn.content)
            for turn in request.history
            if turn.role != "system"
        ]
        system = build_system_prompt(request.systemPrompt, context_block)
        conversation = build_conversation(history, request.message.strip())

        try:
            completion = await app.llm.complete(
                messages=[{"role": "user", "content": conversation}],
                system=system,
            )
        except Exception as e:
            logger.error("Chat completion failed: %s", e, exc_info=True)
            return error_response(500, "PROVIDER_ERROR", str(e))

        return {"message": completion.text, "usage": completion.usage()}

    return router
