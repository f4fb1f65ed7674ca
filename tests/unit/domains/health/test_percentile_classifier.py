"""Tests for age/sex percentile classification."""

from __future__ import annotations

import pytest

from vitalscore.domains.health.domain_logic.errors import PreconditionError
from vitalscore.domains.health.domain_logic.percentile_classifier import (
    classify,
    classify_deep_sleep,
    classify_hrv,
    classify_physiology,
    percentile_from_table,
)
from vitalscore.domains.health.domain_logic.reference_curves import PercentileTable
from vitalscore.domains.health.domain_logic.score_models import UserProfile

MALE_45_TABLE = PercentileTable(22, 30, 39.5, 48, 57)


class TestPercentileFromTable:
    @pytest.mark.parametrize("value,expected", [
        (22, 5),
        (30, 25),
        (39.5, 50),
        (48, 75),
        (57, 95),
        (34, 36),
    ])
    def test_interpolates_between_named_percentiles(self, value, expected):
        assert percentile_from_table(value, MALE_45_TABLE) == expected

    def test_below_p5_scales_proportionally(self):
        assert percentile_from_table(11, MALE_45_TABLE) == 3

    def test_above_p95_extrapolates(self):
        assert percentile_from_table(60, MALE_45_TABLE) == 96

    def test_clamped_to_1_and_99(self):
        assert percentile_from_table(0, MALE_45_TABLE) == 1
        assert percentile_from_table(500, MALE_45_TABLE) == 99

    def test_monotonic(self):
        values = [percentile_from_table(v, MALE_45_TABLE) for v in range(0, 120)]
        assert values == sorted(values)


class TestClassifyHrv:
    def test_median_is_moderate(self, male_45):
        result = classify_hrv(39.5, male_45)
        assert result.classification == "moderate"
        assert result.percentile == 50
        assert result.age_adjusted is True

    def test_buckets(self, male_45):
        assert classify("hrv", 22, male_45).classification == "low"
        assert classify("hrv", 34, male_45).classification == "moderate"
        assert classify("hrv", 48, male_45).classification == "favorable"

    def test_female_table(self, female_30):
        assert classify("hrv", 46.5, female_30).percentile == 50

    def test_other_uses_female_table(self):
        other = classify("hrv", 46.5, UserProfile(age=30, sex="other"))
        assert other.percentile == 50

    def test_condition_penalty_applied(self):
        profile = UserProfile(age=45, sex="male", conditions={"heart_failure"})
        result = classify("hrv", 48, profile)
        assert result.percentile == 54
        assert result.value == 48

    def test_requires_age(self):
        with pytest.raises(PreconditionError):
            classify("hrv", 40, UserProfile(age=None))


class TestClassifyDeepSleep:
    @pytest.mark.parametrize("minutes,classification,percentile", [
        (30, "inadequate", 15),
        (50, "borderline", 40),
        (60, "adequate", 60),
        (90, "adequate", 80),
        (200, "adequate", 99),
        (0, "inadequate", 1),
    ])
    def test_age_45(self, male_45, minutes, classification, percentile):
        result = classify_deep_sleep(minutes, male_45)
        assert result.classification == classification
        assert result.percentile == percentile

    def test_older_adult_adjustment(self):
        profile = UserProfile(age=65, sex="female")
        assert classify("deep_sleep", 25, profile).percentile == 18
        assert classify("deep_sleep", 28, profile).classification == "borderline"

    def test_young_adult_thresholds(self):
        profile = UserProfile(age=25, sex="male")
        assert classify("deep_sleep", 70, profile).classification == "borderline"


class TestClassifyDispatch:
    def test_unsupported_metric(self, male_45):
        with pytest.raises(ValueError, match="hrv and deep_sleep"):
            classify("steps", 8000, male_45)

    def test_physiology_pair(self, male_45):
        result = classify_physiology(39.5, 60, male_45)
        data = result.to_dict()
        assert data["hrv"]["percentile"] == 50
        assert data["deep_sleep"]["classification"] == "adequate"
        assert data["deep_sleep"]["value"] == 60
