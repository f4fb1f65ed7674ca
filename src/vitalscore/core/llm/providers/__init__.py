"""LLM provider implementations."""

from vitalscore.core.llm.providers.anthropic import AnthropicProvider
from vitalscore.core.llm.providers.mock import MockProvider
from vitalscore.core.llm.providers.openai import OpenAIProvider

__all__ = ["AnthropicProvider", "MockProvider", "OpenAIProvider"]
