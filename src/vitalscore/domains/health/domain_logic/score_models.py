"""Health scoring data models and domain constants."""

from __future__ import annotations

import json
import math
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Literal

from vitalscore.domains.health.domain_logic.reference_curves import round_half_up

# ---------------------------------------------------------------------------
# Domain constants
# ---------------------------------------------------------------------------

MetricType = Literal["hrv", "deep_sleep", "resting_hr", "steps", "recovery"]
Sex = Literal["male", "female", "other"]
Condition = Literal["heart_failure", "diabetes", "chronic_kidney_disease"]
Severity = Literal["warning", "critical"]
WeightSource = Literal["default", "advisory", "fallback"]

METRIC_TYPES: tuple[str, ...] = ("hrv", "deep_sleep", "resting_hr", "steps", "recovery")
SEXES: tuple[str, ...] = ("male", "female", "other")
CONDITIONS: tuple[str, ...] = ("heart_failure", "diabetes", "chronic_kidney_disease")

CONDITION_LABELS = {
    "heart_failure": "heart failure",
    "diabetes": "diabetes",
    "chronic_kidney_disease": "chronic kidney disease",
}

# Component order used everywhere weights and scores are listed.
COMPONENT_NAMES = ["hrv", "sleep", "recovery", "activity"]

WEIGHT_SUM_TOLERANCE = 1e-6

# Raw metric fields carried by a MetricSample.
SAMPLE_FIELDS = (
    "hrv",
    "resting_heart_rate",
    "deep_sleep_minutes",
    "sleep_score",
    "recovery_score",
    "steps",
)

# Neutral sub-score for a component with no measurement that day.
NEUTRAL_SCORE = 50.0


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class MetricSample:
    """One user, one calendar date, one source. Any metric may be absent."""

    user_id: str
    date: date
    source: str = "unknown"
    hrv: float | None = None
    resting_heart_rate: float | None = None
    deep_sleep_minutes: float | None = None
    sleep_score: float | None = None
    recovery_score: float | None = None
    steps: float | None = None

    def value_for(self, metric_type: str) -> float | None:
        """Return the raw value tracked under a baseline metric type."""
        return {
            "hrv": self.hrv,
            "deep_sleep": self.deep_sleep_minutes,
            "resting_hr": self.resting_heart_rate,
            "steps": self.steps,
            "recovery": self.recovery_score,
        }.get(metric_type)

    def metrics(self) -> dict[str, float | None]:
        """Raw metric fields as a dict (no identity fields)."""
        return {
            "hrv": self.hrv,
            "resting_heart_rate": self.resting_heart_rate,
            "deep_sleep_minutes": self.deep_sleep_minutes,
            "sleep_score": self.sleep_score,
            "recovery_score": self.recovery_score,
            "steps": self.steps,
        }


@dataclass(frozen=True)
class UserProfile:
    """Demographics and conditions used by the reference curves."""

    age: int | None
    sex: str = "other"
    conditions: frozenset[str] = frozenset()

    def __post_init__(self) -> None:
        if self.sex not in SEXES:
            raise ValueError(f"sex must be one of {SEXES}, got {self.sex!r}")
        unknown = set(self.conditions) - set(CONDITIONS)
        if unknown:
            raise ValueError(f"Unknown conditions: {sorted(unknown)}")
        object.__setattr__(self, "conditions", frozenset(self.conditions))

    def condition_labels(self) -> list[str]:
        """Human-readable condition names in a stable order."""
        return [CONDITION_LABELS[c] for c in CONDITIONS if c in self.conditions]


@dataclass(frozen=True)
class Baseline:
    """Rolling per-user, per-metric mean and standard deviation.

    ``window_end`` is the last date included in the window, when known.
    """

    user_id: str
    metric_type: str
    mean_value: float
    std_deviation: float
    sample_count: int | None = None
    window_end: date | None = None


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

@dataclass
class ComponentScores:
    """Four 0-100 sub-scores plus the trace of how each was derived."""

    hrv_score: float
    sleep_score: float
    recovery_score: float
    activity_score: float
    details: dict[str, Any] = field(default_factory=dict)

    def as_list(self) -> list[float]:
        """Return values in COMPONENT_NAMES order."""
        return [self.hrv_score, self.sleep_score, self.recovery_score, self.activity_score]


@dataclass(frozen=True)
class Weights:
    """Component weights. Always normalized so the four sum to 1.0."""

    hrv_weight: float
    sleep_weight: float
    recovery_weight: float
    activity_weight: float
    reasoning: str = ""
    source: str = "default"

    @classmethod
    def normalized(
        cls,
        hrv: float,
        sleep: float,
        recovery: float,
        activity: float,
        *,
        reasoning: str = "",
        source: str = "default",
    ) -> Weights:
        """Build weights from raw values, dividing each by their sum.

        Raises:
            ValueError: If any value is negative or non-finite, or all are zero.
        """
        raw = [hrv, sleep, recovery, activity]
        for value in raw:
            if not math.isfinite(value) or value < 0:
                raise ValueError(f"Weights must be finite and non-negative, got {raw}")
        largest = max(raw)
        if largest <= 0:
            raise ValueError("Weights must not all be zero")
        # Scale by the largest value first so the sum cannot overflow.
        scaled = [v / largest for v in raw]
        total = sum(scaled)
        hrv_w, sleep_w, recovery_w, activity_w = (v / total for v in scaled)
        return cls(
            hrv_weight=hrv_w,
            sleep_weight=sleep_w,
            recovery_weight=recovery_w,
            activity_weight=activity_w,
            reasoning=reasoning,
            source=source,
        )

    def as_list(self) -> list[float]:
        """Return values in COMPONENT_NAMES order."""
        return [self.hrv_weight, self.sleep_weight, self.recovery_weight, self.activity_weight]

    def total(self) -> float:
        return sum(self.as_list())

    def with_source(self, source: str, reasoning: str | None = None) -> Weights:
        return Weights(
            hrv_weight=self.hrv_weight,
            sleep_weight=self.sleep_weight,
            recovery_weight=self.recovery_weight,
            activity_weight=self.activity_weight,
            reasoning=self.reasoning if reasoning is None else reasoning,
            source=source,
        )


DEFAULT_WEIGHTS = Weights(
    hrv_weight=0.30,
    sleep_weight=0.30,
    recovery_weight=0.20,
    activity_weight=0.20,
    reasoning="Default balanced weights",
    source="default",
)


@dataclass
class HealthScoreRecord:
    """One composite score per (user, date), with its breakdown."""

    user_id: str
    date: date
    overall_score: int
    components: ComponentScores
    weights: Weights

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "date": self.date.isoformat(),
            "overall_score": self.overall_score,
            "components": {
                name: {"score": round_half_up(score), "weight": round(weight, 4)}
                for name, score, weight in zip(
                    COMPONENT_NAMES, self.components.as_list(), self.weights.as_list()
                )
            },
            "details": self.components.details,
            "reasoning": self.weights.reasoning,
            "weight_source": self.weights.source,
        }

    def to_json(self) -> str:
        """Canonical JSON form; identical records give identical bytes."""
        return json.dumps(self.to_dict(), sort_keys=True, separators=(",", ":"))


@dataclass(frozen=True)
class AnomalyEvent:
    """A significant deviation of one metric from the user's baseline."""

    user_id: str
    metric_type: str
    detected_value: float
    baseline_value: float
    deviation_sigma: float
    severity: str
    detected_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "metric_type": self.metric_type,
            "detected_value": self.detected_value,
            "baseline_value": self.baseline_value,
            "deviation_sigma": round(self.deviation_sigma, 4),
            "severity": self.severity,
            "detected_at": self.detected_at.isoformat(),
        }


@dataclass(frozen=True)
class ClassificationResult:
    """Percentile position and qualitative bucket for one raw value."""

    metric_type: str
    value: float
    classification: str
    percentile: int
    age_adjusted: bool = True


@dataclass(frozen=True)
class PhysiologicalClassification:
    """HRV and deep-sleep classifications computed together for narratives."""

    hrv: ClassificationResult
    deep_sleep: ClassificationResult

    def to_dict(self) -> dict[str, Any]:
        return {
            "hrv": {
                "value": self.hrv.value,
                "classification": self.hrv.classification,
                "percentile": self.hrv.percentile,
                "age_adjusted": self.hrv.age_adjusted,
            },
            "deep_sleep": {
                "value": self.deep_sleep.value,
                "classification": self.deep_sleep.classification,
                "percentile": self.deep_sleep.percentile,
                "age_adjusted": self.deep_sleep.age_adjusted,
            },
        }


@dataclass(frozen=True)
class PersonalRecord:
    """All-time best value of one tracked metric."""

    user_id: str
    record_type: str
    record_value: float
    previous_record: float | None
    achieved_date: date
    record_scope: str = "all_time"

    def to_dict(self) -> dict[str, Any]:
        return {
            "record_type": self.record_type,
            "record_value": self.record_value,
            "previous_record": self.previous_record,
            "achieved_date": self.achieved_date.isoformat(),
            "record_scope": self.record_scope,
        }
