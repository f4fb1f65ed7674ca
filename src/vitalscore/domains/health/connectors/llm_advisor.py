"""WeightAdvisor backed by the inner LLM client."""

from __future__ import annotations

import logging

from vitalscore.core.llm.client import InnerLLMClient
from vitalscore.core.llm.response import LLMResponseError, read_number
from vitalscore.core.llm.system_prompt import (
    WEIGHT_ADVISORY_SYSTEM_PROMPT,
    build_weight_advisory_prompt,
)
from vitalscore.domains.health.connectors import AdvisoryRequest, AdvisoryResult
from vitalscore.domains.health.domain_logic.errors import AdvisoryUnavailableError

logger = logging.getLogger(__name__)

DEFAULT_ADVISORY_REASONING = "AI-determined weights based on data quality and health profile"


class LLMWeightAdvisor:
    """Asks an LLM for component weights and parses the four numbers.

    Every provider, transport and parse failure surfaces as
    ``AdvisoryUnavailableError``.
    """

    def __init__(self, client: InnerLLMClient, *, provider_name: str = "") -> None:
        self._client = client
        self.provider_name = provider_name

    async def suggest_weights(self, request: AdvisoryRequest) -> AdvisoryResult:
        user_message = build_weight_advisory_prompt(
            age=request.age,
            conditions=list(request.conditions),
            sufficiency=request.sufficiency,
        )
        try:
            response = await self._client.complete_json(
                WEIGHT_ADVISORY_SYSTEM_PROMPT, user_message, max_tokens=200, temperature=0.3
            )
        except LLMResponseError as exc:
            raise AdvisoryUnavailableError(f"Unparseable advisory response: {exc}") from exc
        except Exception as exc:
            raise AdvisoryUnavailableError(
                f"Advisory call failed: {type(exc).__name__}"
            ) from exc

        payload = response.payload
        try:
            result = AdvisoryResult(
                hrv_weight=read_number(payload, "hrvWeight", "hrv_weight", "hrv"),
                sleep_weight=read_number(payload, "sleepWeight", "sleep_weight", "sleep"),
                recovery_weight=read_number(payload, "recoveryWeight", "recovery_weight", "recovery"),
                activity_weight=read_number(payload, "activityWeight", "activity_weight", "activity"),
                reasoning=str(payload.get("reasoning") or DEFAULT_ADVISORY_REASONING),
                provider=self.provider_name or response.model,
            )
        except LLMResponseError as exc:
            raise AdvisoryUnavailableError(f"Malformed advisory weights: {exc}") from exc

        logger.debug("Advisory weights received from %s", result.provider)
        return result
