"""Inner LLM client — structured JSON completions for advisory calls."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from vitalscore.core.llm.provider import LLMProvider, ProviderResponse
from vitalscore.core.llm.response import extract_json_object

logger = logging.getLogger(__name__)


@dataclass
class LLMJsonResponse:
    """Parsed JSON payload plus provider metadata."""

    payload: dict[str, Any]
    model: str
    usage: dict[str, int] = field(default_factory=dict)


class InnerLLMClient:
    """Invokes an LLM provider and parses its completion as a JSON object."""

    def __init__(self, provider: LLMProvider) -> None:
        self.provider = provider

    async def complete_json(
        self,
        system_message: str,
        user_message: str,
        *,
        max_tokens: int = 200,
        temperature: float = 0.3,
    ) -> LLMJsonResponse:
        """Call the provider and return the first JSON object it produced.

        Raises:
            LLMResponseError: If the completion holds no parseable object.
            Exception: Provider/transport errors propagate unchanged.
        """
        provider_response: ProviderResponse = await self.provider.generate(
            system_message=system_message,
            user_message=user_message,
            max_tokens=max_tokens,
            temperature=temperature,
        )

        logger.info(
            "Advisory LLM call: model=%s, tokens=%d+%d, latency=%.0fms",
            provider_response.model,
            provider_response.input_tokens,
            provider_response.output_tokens,
            provider_response.latency_ms,
        )

        return LLMJsonResponse(
            payload=extract_json_object(provider_response.content),
            model=provider_response.model,
            usage={
                "input_tokens": provider_response.input_tokens,
                "output_tokens": provider_response.output_tokens,
            },
        )
