"""Anthropic Claude provider."""

from __future__ import annotations

import time

from vitalscore.core.llm.provider import ProviderResponse


class AnthropicProvider:
    """Claude provider using the Anthropic SDK.

    Retries are disabled: the weight resolver owns the timeout and
    falls back to default weights instead of waiting on SDK backoff.
    """

    def __init__(
        self,
        api_key: str,
        model: str = "claude-sonnet-4-5-20250929",
        timeout: float = 10.0,
    ) -> None:
        import anthropic

        self.client = anthropic.AsyncAnthropic(api_key=api_key, timeout=timeout, max_retries=0)
        self.model = model

    async def generate(
        self,
        system_message: str,
        user_message: str,
        max_tokens: int = 200,
        temperature: float = 0.3,
    ) -> ProviderResponse:
        start = time.monotonic()
        response = await self.client.messages.create(
            model=self.model,
            max_tokens=max_tokens,
            temperature=temperature,
            system=system_message,
            messages=[{"role": "user", "content": user_message}],
        )
        elapsed_ms = (time.monotonic() - start) * 1000

        text_blocks = [b.text for b in response.content if getattr(b, "type", "") == "text"]
        return ProviderResponse(
            content="".join(text_blocks),
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
            model=self.model,
            latency_ms=elapsed_ms,
        )
