"""Tests for weight resolution: defaults, advisory, fallback and caching."""

from __future__ import annotations

import asyncio
import json
from datetime import date, timedelta

import pytest

from vitalscore.core.cache.ttl import TTLCache
from vitalscore.core.llm.client import InnerLLMClient
from vitalscore.core.llm.providers.mock import MockProvider
from vitalscore.domains.health.connectors import AdvisoryRequest, AdvisoryResult
from vitalscore.domains.health.connectors.llm_advisor import LLMWeightAdvisor
from vitalscore.domains.health.domain_logic.errors import (
    AdvisoryUnavailableError,
    PreconditionError,
)
from vitalscore.domains.health.domain_logic.score_models import (
    DEFAULT_WEIGHTS,
    MetricSample,
    UserProfile,
    Weights,
)
from vitalscore.domains.health.domain_logic.weight_resolver import (
    WeightResolver,
    data_sufficiency,
)


def _run(coro):
    """Run an async coroutine synchronously (no pytest-asyncio required)."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def _days(n: int, end: date = date(2026, 3, 7), **metrics) -> list[MetricSample]:
    return [
        MetricSample(user_id="user-1", date=end - timedelta(days=i), **metrics)
        for i in range(n)
    ]


class ScriptedAdvisor:
    """WeightAdvisor double returning a fixed result or raising."""

    def __init__(self, result=None, *, error=None, delay_s=0.0):
        self.result = result or AdvisoryResult(0.4, 0.3, 0.2, 0.1, reasoning="cardiac focus")
        self.error = error
        self.delay_s = delay_s
        self.requests: list[AdvisoryRequest] = []

    async def suggest_weights(self, request):
        self.requests.append(request)
        if self.delay_s:
            await asyncio.sleep(self.delay_s)
        if self.error is not None:
            raise self.error
        return self.result


class TestDataSufficiency:
    def test_three_of_seven_days_is_sufficient(self):
        flags = data_sufficiency(_days(3, hrv=40.0, steps=5000.0))
        assert flags == {"hrv": True, "sleep": False, "recovery": False, "activity": True}

    def test_two_days_is_limited(self):
        assert data_sufficiency(_days(2, hrv=40.0))["hrv"] is False

    def test_only_last_seven_days_count(self):
        old = _days(5, end=date(2026, 2, 20), hrv=40.0)
        recent = _days(2, end=date(2026, 3, 7), hrv=40.0)
        assert data_sufficiency(old + recent)["hrv"] is False

    def test_multiple_sources_same_day_count_once(self):
        samples = [
            MetricSample(user_id="user-1", date=date(2026, 3, 7), source=src, hrv=40.0)
            for src in ("oura", "whoop", "garmin")
        ]
        assert data_sufficiency(samples)["hrv"] is False

    def test_sleep_counts_either_source(self):
        samples = _days(2, deep_sleep_minutes=60.0) + _days(1, end=date(2026, 3, 5), sleep_score=70.0)
        assert data_sufficiency(samples)["sleep"] is True

    def test_window_anchored_at_as_of(self):
        samples = _days(3, end=date(2026, 3, 7), recovery_score=70.0)
        assert data_sufficiency(samples, as_of=date(2026, 3, 20))["recovery"] is False

    def test_empty(self):
        assert not any(data_sufficiency([]).values())


class TestDefaults:
    def test_no_advisor_returns_defaults(self, male_45):
        weights = _run(WeightResolver().resolve_weights(male_45, []))
        assert weights.source == "default"
        assert weights.as_list() == pytest.approx([0.30, 0.30, 0.20, 0.20])
        assert "not configured" in weights.reasoning

    def test_custom_defaults_are_normalized(self, male_45):
        resolver = WeightResolver(default_weights=Weights(3, 3, 2, 2))
        weights = _run(resolver.resolve_weights(male_45, []))
        assert weights.total() == pytest.approx(1.0)
        assert weights.hrv_weight == pytest.approx(0.3)

    def test_missing_age_raises(self):
        with pytest.raises(PreconditionError):
            _run(WeightResolver().resolve_weights(UserProfile(age=None), []))

    def test_advisory_enabled_flag(self):
        assert WeightResolver().advisory_enabled is False
        assert WeightResolver(ScriptedAdvisor()).advisory_enabled is True


class TestAdvisory:
    def test_advisory_weights_used(self, male_45):
        resolver = WeightResolver(ScriptedAdvisor())
        weights = _run(resolver.resolve_weights(male_45, []))
        assert weights.source == "advisory"
        assert weights.as_list() == pytest.approx([0.4, 0.3, 0.2, 0.1])
        assert weights.reasoning == "cardiac focus"

    def test_renormalizes_advisory_weights(self, male_45):
        advisor = ScriptedAdvisor(AdvisoryResult(2.0, 1.0, 1.0, 0.0))
        weights = _run(WeightResolver(advisor).resolve_weights(male_45, []))
        assert weights.as_list() == pytest.approx([0.5, 0.25, 0.25, 0.0])
        assert weights.total() == pytest.approx(1.0)

    def test_huge_finite_weights_still_sum_to_one(self, male_45):
        advisor = ScriptedAdvisor(AdvisoryResult(1e308, 1e308, 1e308, 1e308))
        weights = _run(WeightResolver(advisor).resolve_weights(male_45, []))
        assert weights.source == "advisory"
        assert weights.total() == pytest.approx(1.0)
        assert weights.as_list() == pytest.approx([0.25, 0.25, 0.25, 0.25])

    def test_request_carries_only_profile_facts(self):
        advisor = ScriptedAdvisor()
        profile = UserProfile(age=67, sex="female", conditions={"diabetes", "heart_failure"})
        _run(WeightResolver(advisor).resolve_weights(profile, _days(4, hrv=30.0)))

        request = advisor.requests[0]
        assert request.age == 67
        assert request.conditions == ("heart failure", "diabetes")
        assert request.sufficiency["hrv"] is True
        assert set(request.to_payload()) == {"age", "conditions", "sufficient_data"}


class TestFallback:
    def test_advisor_error(self, male_45):
        advisor = ScriptedAdvisor(error=AdvisoryUnavailableError("boom"))
        weights = _run(WeightResolver(advisor).resolve_weights(male_45, []))
        assert weights.source == "fallback"
        assert weights.as_list() == pytest.approx(DEFAULT_WEIGHTS.as_list())
        assert "advisory unavailable" in weights.reasoning

    def test_unexpected_advisor_exception(self, male_45):
        advisor = ScriptedAdvisor(error=RuntimeError("socket closed"))
        weights = _run(WeightResolver(advisor).resolve_weights(male_45, []))
        assert weights.source == "fallback"

    def test_timeout(self, male_45):
        advisor = ScriptedAdvisor(delay_s=1.0)
        resolver = WeightResolver(advisor, timeout_s=0.05)
        weights = _run(resolver.resolve_weights(male_45, []))
        assert weights.source == "fallback"
        assert "timeout" in weights.reasoning

    @pytest.mark.parametrize("result", [
        AdvisoryResult(-0.1, 0.5, 0.3, 0.3),
        AdvisoryResult(0.0, 0.0, 0.0, 0.0),
        AdvisoryResult(float("nan"), 0.3, 0.3, 0.3),
    ])
    def test_unusable_weights(self, male_45, result):
        weights = _run(WeightResolver(ScriptedAdvisor(result)).resolve_weights(male_45, []))
        assert weights.source == "fallback"
        assert weights.total() == pytest.approx(1.0)


class TestCache:
    def test_second_call_served_from_cache(self, male_45):
        advisor = ScriptedAdvisor()
        resolver = WeightResolver(advisor, cache=TTLCache(60))
        first = _run(resolver.resolve_weights(male_45, []))
        second = _run(resolver.resolve_weights(male_45, []))

        assert len(advisor.requests) == 1
        assert first.source == "advisory"
        assert second == first
        assert second.source == "advisory"

    def test_different_profile_misses_cache(self, male_45):
        advisor = ScriptedAdvisor()
        resolver = WeightResolver(advisor, cache=TTLCache(60))
        _run(resolver.resolve_weights(male_45, []))
        _run(resolver.resolve_weights(UserProfile(age=46, sex="male"), []))
        assert len(advisor.requests) == 2

    def test_fallback_not_cached(self, male_45):
        advisor = ScriptedAdvisor(error=AdvisoryUnavailableError("down"))
        resolver = WeightResolver(advisor, cache=TTLCache(60))
        _run(resolver.resolve_weights(male_45, []))
        _run(resolver.resolve_weights(male_45, []))
        assert len(advisor.requests) == 2


class TestWithLLMAdvisor:
    def _resolver(self, provider: MockProvider) -> WeightResolver:
        return WeightResolver(LLMWeightAdvisor(InnerLLMClient(provider), provider_name="mock"))

    def test_parses_llm_weights(self, male_45):
        content = json.dumps({
            "hrvWeight": 0.35, "sleepWeight": 0.25,
            "recoveryWeight": 0.25, "activityWeight": 0.15,
            "reasoning": "Limited activity data",
        })
        weights = _run(self._resolver(MockProvider(content)).resolve_weights(male_45, []))
        assert weights.source == "advisory"
        assert weights.as_list() == pytest.approx([0.35, 0.25, 0.25, 0.15])
        assert weights.reasoning == "Limited activity data"

    def test_garbage_completion_falls_back(self, male_45):
        weights = _run(self._resolver(MockProvider("I cannot help")).resolve_weights(male_45, []))
        assert weights.source == "fallback"

    def test_provider_error_falls_back(self, male_45):
        provider = MockProvider(error=ConnectionError("refused"))
        weights = _run(self._resolver(provider).resolve_weights(male_45, []))
        assert weights.source == "fallback"

    def test_huge_llm_weights_are_normalized(self, male_45):
        content = json.dumps({
            "hrvWeight": 1e308, "sleepWeight": 1e308,
            "recoveryWeight": 1e308, "activityWeight": 1e308,
        })
        weights = _run(self._resolver(MockProvider(content)).resolve_weights(male_45, []))
        assert weights.source == "advisory"
        assert weights.as_list() == pytest.approx([0.25, 0.25, 0.25, 0.25])
