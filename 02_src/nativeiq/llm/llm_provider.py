"""LLM Provider implementation using Anthropic Claude API."""

import os
from dataclasses import dataclass
from typing import Protocol

import anthropic

DEFAULT_MODEL = "claude-3-5-sonnet-20241022"
EMPTY_COMPLETION = "I apologize, but I couldn't generate a response."


@dataclass
class LLMCompletion:
    """Text of a completion plus token usage."""

    text: str
    prompt_tokens: int = 0
    completion_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens

    def usage(self) -> dict:
        return {
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "total_tokens": self.total_tokens,
        }


class ILLMProvider(Protocol):
    """Abstraction for LLM access."""

    async def complete(
        self,
        messages: list[dict],  # [{"role": "user", "content": "..."}]
        system: str | None = None,
        max_tokens: int = 1024,
    ) -> LLMCompletion:
        """Generate completion."""
        ...


class LLMProvider:
    """Anthropic Claude API provider."""

    def __init__(self, api_key: str | None = None, model: str | None = None):
        self._api_key = api_key or os.getenv("ANTHROPIC_API_KEY")
        if not self._api_key:
            raise ValueError("ANTHROPIC_API_KEY environment variable not set")

        self._model = model or os.getenv("ANTHROPIC_MODEL", DEFAULT_MODEL)
        self._client = anthropic.AsyncAnthropic(api_key=self._api_key)

    @property
    def model(self) -> str:
        return self._model

    async def complete(
        self,
        messages: list[dict],
        system: str | None = None,
        max_tokens: int = 1024,
    ) -> LLMCompletion:
        """Generate completion using Claude API."""
        request = {
            "model": self._model,
            "messages": messages,
            "max_tokens": max_tokens,
        }
        if system:
            request["system"] = system

        try:
            response = await self._client.messages.create(**request)
        except Exception as e:
            # Re-raise for handling by caller
            raise RuntimeError(f"LLM API error: {e}") from e

        # Tool-use blocks carry no text
        text = "".join(
            block.text
            for block in response.content
            if isinstance(getattr(block, "text", None), str)
        )
        usage = getattr(response, "usage", None)
        return LLMCompletion(
            text=text or EMPTY_COMPLETION,
            prompt_tokens=_token_count(usage, "input_tokens"),
            completion_tokens=_token_count(usage, "output_tokens"),
        )


def _token_count(usage, name: str) -> int:
    value = getattr(usage, name, 0)
    return value if isinstance(value, int) else 0
