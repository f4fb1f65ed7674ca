"""Tests for direction-aware baseline anomaly detection."""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone

import pytest

from vitalscore.domains.health.domain_logic.anomaly_detector import (
    classify_deviation,
    detect,
    deviation_sigma,
)
from vitalscore.domains.health.domain_logic.errors import DegenerateBaselineError
from vitalscore.domains.health.domain_logic.score_models import Baseline, MetricSample

NOW = datetime(2026, 3, 2, 6, 0, tzinfo=timezone.utc)


def _clock() -> datetime:
    return NOW


def _sample(**metrics) -> MetricSample:
    return MetricSample(user_id="user-1", date=date(2026, 3, 1), source="oura", **metrics)


def _baseline(metric_type: str, mean: float, std: float, **extra) -> Baseline:
    return Baseline(user_id="user-1", metric_type=metric_type, mean_value=mean, std_deviation=std, **extra)


class TestDeviationSigma:
    def test_z_score(self):
        assert deviation_sigma(29.0, _baseline("hrv", 45.0, 8.0)) == pytest.approx(-2.0)

    def test_zero_std_is_degenerate(self):
        with pytest.raises(DegenerateBaselineError):
            deviation_sigma(29.0, _baseline("hrv", 45.0, 0.0))


class TestClassifyDeviation:
    @pytest.mark.parametrize("metric,deviation,expected", [
        ("hrv", -1.4, None),
        ("hrv", -1.5, "warning"),
        ("hrv", -2.0, "warning"),
        ("hrv", -2.5, "critical"),
        ("hrv", 1.8, None),
        ("hrv", 2.0, "warning"),
        ("hrv", 2.6, "critical"),
        ("steps", 1.9, None),
        ("steps", -1.6, "warning"),
        ("resting_hr", 1.6, "warning"),
        ("resting_hr", -1.6, None),
        ("resting_hr", -2.1, "warning"),
        ("deep_sleep", -3.0, "critical"),
        ("recovery", 1.5, None),
    ])
    def test_policy(self, metric, deviation, expected):
        assert classify_deviation(metric, deviation) == expected


class TestDetect:
    def test_hrv_drop_example(self):
        events = detect(_sample(hrv=29.0), [_baseline("hrv", 45.0, 8.0)], clock=_clock)
        assert len(events) == 1
        event = events[0]
        assert event.metric_type == "hrv"
        assert event.severity == "warning"
        assert event.deviation_sigma == pytest.approx(-2.0)
        assert event.detected_value == 29.0
        assert event.baseline_value == 45.0
        assert event.detected_at == NOW

    def test_resting_hr_rise_is_critical(self):
        # (78 - 65) / 5 = 2.6
        events = detect(_sample(resting_heart_rate=78.0), [_baseline("resting_hr", 65.0, 5.0)], clock=_clock)
        assert [(e.metric_type, e.severity) for e in events] == [("resting_hr", "critical")]

    def test_favorable_swing_below_two_sigma_not_emitted(self):
        # steps (12700 - 10000) / 1500 = 1.8
        events = detect(_sample(steps=12700.0), [_baseline("steps", 10000.0, 1500.0)], clock=_clock)
        assert events == []

    def test_favorable_swing_above_two_sigma_emitted(self):
        events = detect(_sample(steps=14000.0), [_baseline("steps", 10000.0, 1500.0)], clock=_clock)
        assert len(events) == 1
        assert events[0].severity == "critical"

    def test_zero_variance_skipped(self):
        assert detect(_sample(hrv=10.0), [_baseline("hrv", 45.0, 0.0)], clock=_clock) == []

    def test_missing_value_skipped(self):
        assert detect(_sample(steps=9000.0), [_baseline("hrv", 45.0, 8.0)], clock=_clock) == []

    def test_unknown_metric_skipped(self):
        assert detect(_sample(hrv=10.0), [_baseline("spo2", 97.0, 1.0)], clock=_clock) == []

    def test_multiple_metrics(self):
        baselines = [
            _baseline("hrv", 45.0, 8.0),
            _baseline("deep_sleep", 80.0, 10.0),
            _baseline("recovery", 70.0, 10.0),
        ]
        sample = _sample(hrv=25.0, deep_sleep_minutes=60.0, recovery_score=68.0)
        events = detect(sample, baselines, clock=_clock)
        assert {e.metric_type: e.severity for e in events} == {
            "hrv": "critical",
            "deep_sleep": "warning",
        }

    def test_baseline_including_sample_day_skipped(self, caplog):
        baseline = _baseline("hrv", 45.0, 8.0, window_end=date(2026, 3, 1))
        with caplog.at_level(logging.WARNING):
            events = detect(_sample(hrv=20.0), [baseline], clock=_clock)
        assert events == []
        assert "window ends" in caplog.text

    def test_baseline_ending_before_sample_day_used(self):
        baseline = _baseline("hrv", 45.0, 8.0, window_end=date(2026, 2, 28))
        assert len(detect(_sample(hrv=20.0), [baseline], clock=_clock)) == 1

    def test_no_baselines(self):
        assert detect(_sample(hrv=20.0), [], clock=_clock) == []

    def test_event_dict(self):
        event = detect(_sample(hrv=29.0), [_baseline("hrv", 45.0, 8.0)], clock=_clock)[0]
        data = event.to_dict()
        assert data["deviation_sigma"] == -2.0
        assert data["detected_at"] == NOW.isoformat()
