"""Tests for the composite score and its persistence."""

from __future__ import annotations

from datetime import date

import pytest

from vitalscore.domains.health.connectors.memory import InMemoryHealthStore
from vitalscore.domains.health.domain_logic.composite_scorer import (
    CompositeScorer,
    score,
    score_label,
)
from vitalscore.domains.health.domain_logic.score_models import (
    DEFAULT_WEIGHTS,
    ComponentScores,
    Weights,
)


def _components(hrv=70.0, sleep=70.0, recovery=70.0, activity=70.0) -> ComponentScores:
    return ComponentScores(hrv, sleep, recovery, activity, details={"hrv": {"raw_value": 48.0}})


class TestScore:
    def test_constant_components_any_weights(self):
        for weights in (
            DEFAULT_WEIGHTS,
            Weights.normalized(0.7, 0.1, 0.1, 0.1),
            Weights.normalized(0, 0, 0, 1),
        ):
            assert score(_components(), weights) == 70

    def test_weighted_sum(self):
        result = score(_components(80, 60, 50, 90), DEFAULT_WEIGHTS)
        # 0.3*80 + 0.3*60 + 0.2*50 + 0.2*90 = 70
        assert result == 70

    def test_rounds_half_up(self):
        weights = Weights.normalized(0.5, 0.5, 0, 0)
        assert score(_components(70, 71, 0, 0), weights) == 71

    def test_returns_int_in_range(self):
        assert score(_components(100, 100, 100, 100), DEFAULT_WEIGHTS) == 100
        assert score(_components(0, 0, 0, 0), DEFAULT_WEIGHTS) == 0

    def test_rejects_unnormalized_weights(self):
        with pytest.raises(ValueError, match="sum to 1.0"):
            score(_components(), Weights(0.5, 0.5, 0.5, 0.5))


class TestWeights:
    def test_normalized_divides_by_sum(self):
        w = Weights.normalized(2, 1, 1, 0)
        assert w.as_list() == pytest.approx([0.5, 0.25, 0.25, 0.0])

    def test_normalized_survives_overflowing_sum(self):
        w = Weights.normalized(1e308, 1e308, 5e307, 5e307)
        assert w.total() == pytest.approx(1.0)
        assert w.as_list() == pytest.approx([1 / 3, 1 / 3, 1 / 6, 1 / 6])

    @pytest.mark.parametrize("raw", [(-1, 1, 1, 1), (0, 0, 0, 0), (float("inf"), 1, 1, 1)])
    def test_normalized_rejects(self, raw):
        with pytest.raises(ValueError):
            Weights.normalized(*raw)

    def test_with_source_keeps_values(self):
        w = DEFAULT_WEIGHTS.with_source("fallback", "advisory down")
        assert w.as_list() == DEFAULT_WEIGHTS.as_list()
        assert w.source == "fallback"
        assert w.reasoning == "advisory down"


class TestScoreLabel:
    @pytest.mark.parametrize("value,label", [
        (100, "Excellent"),
        (85, "Excellent"),
        (84, "Good"),
        (70, "Good"),
        (55, "Fair"),
        (40, "Needs Attention"),
        (39, "Poor"),
        (0, "Poor"),
    ])
    def test_bands(self, value, label):
        assert score_label(value) == label


class TestCompositeScorer:
    def test_persists_record(self):
        store = InMemoryHealthStore()
        record = CompositeScorer(store).score_and_persist(
            "user-1", date(2026, 3, 1), _components(), DEFAULT_WEIGHTS
        )
        assert record.overall_score == 70
        assert store.get_health_score("user-1", date(2026, 3, 1)) == record

    def test_rescoring_overwrites(self):
        store = InMemoryHealthStore()
        scorer = CompositeScorer(store)
        scorer.score_and_persist("user-1", date(2026, 3, 1), _components(), DEFAULT_WEIGHTS)
        scorer.score_and_persist("user-1", date(2026, 3, 1), _components(90, 90, 90, 90), DEFAULT_WEIGHTS)

        history = store.get_health_scores("user-1")
        assert len(history) == 1
        assert history[0].overall_score == 90

    def test_idempotent_serialization(self):
        store = InMemoryHealthStore()
        scorer = CompositeScorer(store)
        first = scorer.score_and_persist("user-1", date(2026, 3, 1), _components(), DEFAULT_WEIGHTS)
        second = scorer.score_and_persist("user-1", date(2026, 3, 1), _components(), DEFAULT_WEIGHTS)
        assert first.to_json() == second.to_json()

    def test_record_dict_shape(self):
        record = CompositeScorer(InMemoryHealthStore()).score_and_persist(
            "user-1", date(2026, 3, 1), _components(70.4, 69.5, 70, 70), DEFAULT_WEIGHTS
        )
        data = record.to_dict()
        assert data["date"] == "2026-03-01"
        assert data["components"]["hrv"] == {"score": 70, "weight": 0.3}
        assert data["components"]["sleep"]["score"] == 70
        assert data["weight_source"] == "default"
        assert data["details"]["hrv"]["raw_value"] == 48.0
