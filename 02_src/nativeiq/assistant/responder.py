"""AI Responder Orchestrator: calls the AI endpoint, falls back locally on failure."""

from typing import Callable, Protocol

import httpx

from ..errors import AssistantError
from ..logging_config import get_logger
from ..models import AssistantReply, ChatTurn
from .fallback import fallback_response

logger = get_logger(__name__)


class IAssistantResponder(Protocol):
    """Produces assistant text for a prompt and recent history."""

    async def respond(self, prompt: str, history: list[ChatTurn]) -> AssistantReply:
        """Never raises for endpoint failures; returns a fallback reply instead."""
        ...


class AssistantResponder:
    """Client of the AI completion endpoint."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        endpoint: str,
        *,
        user_id: str | None = None,
        timeout: float = 20.0,
        history_window: int = 10,
        system_prompt: str | None = None,
        fallback: Callable[[str], str] = fallback_response,
    ):
        self._client = client
        self._endpoint = endpoint
        self._user_id = user_id
        self._timeout = timeout
        self._history_window = history_window
        self._system_prompt = system_prompt
        self._fallback = fallback

    async def respond(self, prompt: str, history: list[ChatTurn]) -> AssistantReply:
        """Ask the endpoint; on any failure answer from the keyword table."""
        window = history[-self._history_window :] if self._history_window > 0 else []
        payload: dict = {
            "message": prompt,
            "history": [turn.to_dict() for turn in window],
        }
        if self._system_prompt:
            payload["systemPrompt"] = self._system_prompt

        try:
            text = await self._request(payload)
        except AssistantError as e:
            logger.warning(
                "Assistant request failed (%s): %s; answering from fallback table",
                e.code,
                e.message,
                extra={"user_id": self._user_id},
            )
            return AssistantReply(content=self._fallback(prompt), error=e)

        return AssistantReply(content=text)

    async def _request(self, payload: dict) -> str:
        headers = {"X-User-Id": self._user_id} if self._user_id else {}

        try:
            response = await self._client.post(
                self._endpoint,
                json=payload,
                headers=headers,
                timeout=self._timeout,
            )
        except httpx.TimeoutException as e:
            raise AssistantError(
                f"Assistant did not answer within {self._timeout:g}s", code="TIMEOUT"
            ) from e
        except httpx.HTTPError as e:
            raise AssistantError(f"Assistant request failed: {e}", code="TRANSPORT_ERROR") from e

        if response.is_error:
            code, message = _error_details(response)
            raise AssistantError(message, code=code, status=response.status_code)

        try:
            body = response.json()
        except ValueError as e:
            raise AssistantError(
                "Assistant returned malformed JSON",
                code="BAD_RESPONSE",
                status=response.status_code,
            ) from e

        text = body.get("message") if isinstance(body, dict) else None
        if not isinstance(text, str) or not text.strip():
            raise AssistantError(
                "Assistant returned an empty message",
                code="BAD_RESPONSE",
                status=response.status_code,
            )
        return text


def _error_details(response: httpx.Response) -> tuple[str, str]:
    """Extract (code, message) from an `{"error": {...}}` body."""
    fallback = ("HTTP_ERROR", f"Assistant endpoint returned {response.status_code}")
    try:
        body = response.json()
    except ValueError:
        return fallback

    error = body.get("error") if isinstance(body, dict) else None
    if not isinstance(error, dict):
        return fallback
    return (
        str(error.get("code") or fallback[0]),
        str(error.get("message") or fallback[1]),
    )
