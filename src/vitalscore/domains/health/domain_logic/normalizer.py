"""Deterministic normalization: raw wearable metrics -> 0-100 sub-scores.

Each ``normalize_*`` function is pure and returns ``(score, details)``
where ``details`` records the raw value and the reference parameters that
produced the score. Scores are always clamped to [0, 100] and are
monotonically non-decreasing in the raw value for a fixed profile.
"""

from __future__ import annotations

from typing import Any

from vitalscore.domains.health.domain_logic.errors import PreconditionError
from vitalscore.domains.health.domain_logic.reference_curves import (
    STEPS_CURVE,
    adjusted_deep_sleep,
    clamp,
    deep_sleep_scoring_curve,
    hrv_condition_factor,
    hrv_scoring_curve,
    resting_hr_adjustment,
)
from vitalscore.domains.health.domain_logic.score_models import (
    NEUTRAL_SCORE,
    ComponentScores,
    MetricSample,
    UserProfile,
)

NORMALIZED_METRICS = ("hrv", "deep_sleep", "recovery", "activity")


def require_age(profile: UserProfile | None) -> int:
    """Return the profile age or raise PreconditionError."""
    if profile is None:
        raise PreconditionError("User profile is required")
    if profile.age is None:
        raise PreconditionError("User profile with age is required")
    return profile.age


# ---------------------------------------------------------------------------
# Per-metric normalizers
# ---------------------------------------------------------------------------

def normalize_hrv(hrv_ms: float, profile: UserProfile) -> tuple[float, dict[str, Any]]:
    """Score RMSSD HRV against the age band and sex thresholds.

    Condition penalties scale the raw value before the curve lookup.
    """
    age = require_age(profile)
    factor = hrv_condition_factor(profile.conditions)
    adjusted = hrv_ms * factor
    curve, low, high = hrv_scoring_curve(age, profile.sex)
    score = clamp(curve(adjusted))
    return score, {
        "raw_value": hrv_ms,
        "adjusted_value": round(adjusted, 4),
        "condition_factor": round(factor, 6),
        "low_threshold": low,
        "high_threshold": high,
    }


def normalize_deep_sleep(minutes: float, profile: UserProfile) -> tuple[float, dict[str, Any]]:
    """Score deep-sleep minutes against the age-band target."""
    age = require_age(profile)
    adjusted = adjusted_deep_sleep(minutes, age)
    curve, target = deep_sleep_scoring_curve(age)
    score = clamp(curve(adjusted))
    return score, {
        "raw_value": minutes,
        "adjusted_value": round(adjusted, 4),
        "target_minutes": target,
    }


def normalize_recovery(recovery_score: float | None) -> tuple[float, dict[str, Any]]:
    """Device recovery score, clamped; absent means neutral."""
    if recovery_score is None:
        return NEUTRAL_SCORE, {"raw_value": None, "fallback": "no_recovery_data"}
    return clamp(recovery_score), {"raw_value": recovery_score}


def normalize_activity(
    steps: float | None, resting_heart_rate: float | None
) -> tuple[float, dict[str, Any]]:
    """Step-count tiers adjusted by a resting heart rate band."""
    details: dict[str, Any] = {"steps": steps, "resting_heart_rate": resting_heart_rate}
    if steps is None:
        base = NEUTRAL_SCORE
        details["fallback"] = "no_steps_data"
    else:
        base = STEPS_CURVE(steps)
    details["base_score"] = round(base, 4)

    adjustment = 0.0
    if resting_heart_rate is not None:
        adjustment = resting_hr_adjustment(resting_heart_rate)
    details["resting_hr_adjustment"] = adjustment

    return clamp(base + adjustment), details


def normalize(metric_type: str, raw_value: float | None, profile: UserProfile) -> float:
    """Normalize a single raw metric to a 0-100 sub-score.

    ``metric_type`` is one of ``hrv``, ``deep_sleep``, ``recovery`` or
    ``activity`` (steps, with no heart-rate adjustment). HRV and deep sleep
    require a value; recovery and activity treat ``None`` as neutral.

    Raises:
        PreconditionError: If the profile has no age.
        ValueError: For an unknown metric type or a missing required value.
    """
    if metric_type in ("hrv", "deep_sleep") and raw_value is None:
        raise ValueError(f"{metric_type} normalization requires a value")
    if metric_type == "hrv":
        return normalize_hrv(raw_value, profile)[0]
    if metric_type == "deep_sleep":
        return normalize_deep_sleep(raw_value, profile)[0]
    if metric_type == "recovery":
        return normalize_recovery(raw_value)[0]
    if metric_type == "activity":
        return normalize_activity(raw_value, None)[0]
    raise ValueError(f"Unknown metric type: {metric_type!r}. Valid: {NORMALIZED_METRICS}")


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------

def compute_component_scores(sample: MetricSample, profile: UserProfile) -> ComponentScores:
    """Compute all four sub-scores for one day's sample.

    Missing HRV is neutral. Sleep uses deep-sleep minutes when present, then
    the device sleep score, then neutral.
    """
    require_age(profile)

    if sample.hrv is not None:
        hrv_score, hrv_details = normalize_hrv(sample.hrv, profile)
    else:
        hrv_score, hrv_details = NEUTRAL_SCORE, {"raw_value": None, "fallback": "no_hrv_data"}

    if sample.deep_sleep_minutes is not None:
        sleep_score, sleep_details = normalize_deep_sleep(sample.deep_sleep_minutes, profile)
        sleep_details["basis"] = "deep_sleep_minutes"
    elif sample.sleep_score is not None:
        sleep_score = clamp(sample.sleep_score)
        sleep_details = {"raw_value": sample.sleep_score, "basis": "sleep_score"}
    else:
        sleep_score, sleep_details = NEUTRAL_SCORE, {"raw_value": None, "fallback": "no_sleep_data"}

    recovery_score, recovery_details = normalize_recovery(sample.recovery_score)
    activity_score, activity_details = normalize_activity(sample.steps, sample.resting_heart_rate)

    return ComponentScores(
        hrv_score=hrv_score,
        sleep_score=sleep_score,
        recovery_score=recovery_score,
        activity_score=activity_score,
        details={
            "hrv": hrv_details,
            "sleep": sleep_details,
            "recovery": recovery_details,
            "activity": activity_details,
        },
    )
