"""LLM module."""

from .llm_provider import ILLMProvider, LLMCompletion, LLMProvider

__all__ = ["ILLMProvider", "LLMCompletion", "LLMProvider"]
