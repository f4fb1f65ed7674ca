"""Scripted LLM provider for tests and offline runs."""

from __future__ import annotations

import asyncio
import json

from vitalscore.core.llm.provider import ProviderResponse

_DEFAULT_CONTENT = json.dumps({
    "hrvWeight": 0.3,
    "sleepWeight": 0.3,
    "recoveryWeight": 0.2,
    "activityWeight": 0.2,
    "reasoning": "Mock advisory weights.",
})


class MockProvider:
    """Returns a canned completion, optionally after a delay or by raising.

    Args:
        response_content: Completion text returned by every call.
        error: Exception instance raised instead of returning.
        delay_s: Seconds to sleep before answering (drives timeout tests).
    """

    def __init__(
        self,
        response_content: str = _DEFAULT_CONTENT,
        *,
        error: Exception | None = None,
        delay_s: float = 0.0,
    ) -> None:
        self.response_content = response_content
        self.error = error
        self.delay_s = delay_s
        self.last_system_message: str = ""
        self.last_user_message: str = ""
        self.call_count: int = 0

    async def generate(
        self,
        system_message: str,
        user_message: str,
        max_tokens: int = 200,
        temperature: float = 0.3,
    ) -> ProviderResponse:
        self.last_system_message = system_message
        self.last_user_message = user_message
        self.call_count += 1
        if self.delay_s:
            await asyncio.sleep(self.delay_s)
        if self.error is not None:
            raise self.error
        return ProviderResponse(
            content=self.response_content,
            input_tokens=len(system_message.split()) + len(user_message.split()),
            output_tokens=len(self.response_content.split()),
            model="mock",
            latency_ms=0.0,
        )
