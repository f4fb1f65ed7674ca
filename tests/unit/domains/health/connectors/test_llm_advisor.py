"""Tests for the LLM-backed weight advisor."""

from __future__ import annotations

import asyncio
import json

import pytest

from vitalscore.core.llm.client import InnerLLMClient
from vitalscore.core.llm.providers.mock import MockProvider
from vitalscore.domains.health.connectors import AdvisoryRequest, WeightAdvisor
from vitalscore.domains.health.connectors.llm_advisor import (
    DEFAULT_ADVISORY_REASONING,
    LLMWeightAdvisor,
)
from vitalscore.domains.health.domain_logic.errors import AdvisoryUnavailableError


def _run(coro):
    """Run an async coroutine synchronously (no pytest-asyncio required)."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


REQUEST = AdvisoryRequest(
    age=62,
    conditions=("heart failure",),
    sufficiency={"hrv": True, "sleep": True, "recovery": False, "activity": True},
)


def _advisor(content: str = "", **kwargs) -> tuple[LLMWeightAdvisor, MockProvider]:
    provider = MockProvider(content, **kwargs) if content else MockProvider(**kwargs)
    return LLMWeightAdvisor(InnerLLMClient(provider), provider_name="mock"), provider


class TestLLMWeightAdvisor:
    def test_satisfies_protocol(self):
        advisor, _ = _advisor()
        assert isinstance(advisor, WeightAdvisor)

    def test_parses_camel_case(self):
        advisor, _ = _advisor(json.dumps({
            "hrvWeight": 0.4, "sleepWeight": 0.3, "recoveryWeight": 0.2,
            "activityWeight": 0.1, "reasoning": "Cardiac history",
        }))
        result = _run(advisor.suggest_weights(REQUEST))
        assert (result.hrv_weight, result.sleep_weight, result.recovery_weight, result.activity_weight) == (
            0.4, 0.3, 0.2, 0.1,
        )
        assert result.reasoning == "Cardiac history"
        assert result.provider == "mock"

    def test_parses_snake_case_in_prose(self):
        content = (
            "Here are the weights:\n```json\n"
            '{"hrv_weight": 0.25, "sleep_weight": 0.25, "recovery_weight": 0.25, "activity_weight": 0.25}'
            "\n```"
        )
        advisor, _ = _advisor(content)
        result = _run(advisor.suggest_weights(REQUEST))
        assert result.hrv_weight == 0.25
        assert result.reasoning == DEFAULT_ADVISORY_REASONING

    def test_prompt_contains_profile_not_values(self):
        advisor, provider = _advisor()
        _run(advisor.suggest_weights(REQUEST))
        prompt = provider.last_user_message
        assert "Age: 62" in prompt
        assert "heart failure" in prompt
        assert "Recovery data: Limited" in prompt
        assert "HRV data: Available" in prompt

    def test_no_conditions(self):
        advisor, provider = _advisor()
        _run(advisor.suggest_weights(AdvisoryRequest(age=30, conditions=())))
        assert "None reported" in provider.last_user_message

    def test_missing_field(self):
        advisor, _ = _advisor(json.dumps({"hrvWeight": 0.5, "sleepWeight": 0.5}))
        with pytest.raises(AdvisoryUnavailableError, match="Malformed"):
            _run(advisor.suggest_weights(REQUEST))

    def test_non_numeric_field(self):
        advisor, _ = _advisor(json.dumps({
            "hrvWeight": "high", "sleepWeight": 0.3, "recoveryWeight": 0.2, "activityWeight": 0.1,
        }))
        with pytest.raises(AdvisoryUnavailableError):
            _run(advisor.suggest_weights(REQUEST))

    def test_no_json(self):
        advisor, _ = _advisor("Sorry, I can't do that.")
        with pytest.raises(AdvisoryUnavailableError, match="Unparseable"):
            _run(advisor.suggest_weights(REQUEST))

    def test_provider_error_wrapped(self):
        advisor, _ = _advisor(error=TimeoutError("read timeout"))
        with pytest.raises(AdvisoryUnavailableError, match="TimeoutError"):
            _run(advisor.suggest_weights(REQUEST))


class TestAdvisoryRequest:
    def test_cache_key_stable_across_order(self):
        a = AdvisoryRequest(50, ("diabetes", "heart failure"), {"hrv": True, "sleep": False})
        b = AdvisoryRequest(50, ("heart failure", "diabetes"), {"sleep": False, "hrv": True})
        assert a.cache_key() == b.cache_key()

    def test_cache_key_varies_with_sufficiency(self):
        a = AdvisoryRequest(50, (), {"hrv": True})
        b = AdvisoryRequest(50, (), {"hrv": False})
        assert a.cache_key() != b.cache_key()
