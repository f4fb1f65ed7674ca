"""Age/sex-adjusted percentile classification of HRV and deep sleep.

HRV is placed within a population percentile table and bucketed by
percentile. Deep sleep is bucketed by age-banded minute thresholds and its
percentile is derived from the position within those thresholds. The two
metrics deliberately use different strategies.
"""

from __future__ import annotations

from vitalscore.domains.health.domain_logic.normalizer import require_age
from vitalscore.domains.health.domain_logic.reference_curves import (
    DEEP_SLEEP_ADEQUATE_SPAN,
    DEEP_SLEEP_CLASS_THRESHOLDS,
    HRV_PERCENTILES,
    PercentileTable,
    adjusted_deep_sleep,
    for_sex,
    hrv_condition_factor,
    round_half_up,
)
from vitalscore.domains.health.domain_logic.score_models import (
    ClassificationResult,
    PhysiologicalClassification,
    UserProfile,
)

MIN_PERCENTILE = 1
MAX_PERCENTILE = 99

# (exclusive upper percentile, bucket)
HRV_BUCKETS = [(25, "low"), (60, "moderate")]
HRV_TOP_BUCKET = "favorable"


def _clamp_percentile(p: int) -> int:
    return max(MIN_PERCENTILE, min(MAX_PERCENTILE, p))


def percentile_from_table(value: float, table: PercentileTable) -> int:
    """Interpolate between the bracketing named percentiles.

    Below p5 the percentile scales proportionally from 0; above p95 it
    gains up to 4 points for an excess of 40% of p95. Result is in [1, 99].
    """
    points = table.points()
    first_value, first_pct = points[0]
    if value <= first_value:
        return _clamp_percentile(round_half_up(value / first_value * first_pct))

    for (lo_value, lo_pct), (hi_value, hi_pct) in zip(points, points[1:]):
        if value <= hi_value:
            position = (value - lo_value) / (hi_value - lo_value)
            return _clamp_percentile(lo_pct + round_half_up(position * (hi_pct - lo_pct)))

    last_value, last_pct = points[-1]
    extra = min(4, round_half_up((value - last_value) / last_value * 10))
    return _clamp_percentile(last_pct + extra)


def hrv_reference(profile: UserProfile) -> PercentileTable:
    return for_sex(HRV_PERCENTILES.lookup(require_age(profile)), profile.sex)


def classify_hrv(hrv_ms: float, profile: UserProfile) -> ClassificationResult:
    table = hrv_reference(profile)
    adjusted = hrv_ms * hrv_condition_factor(profile.conditions)
    percentile = percentile_from_table(adjusted, table)

    classification = HRV_TOP_BUCKET
    for upper, bucket in HRV_BUCKETS:
        if percentile < upper:
            classification = bucket
            break

    return ClassificationResult(
        metric_type="hrv",
        value=hrv_ms,
        classification=classification,
        percentile=percentile,
    )


def classify_deep_sleep(minutes: float, profile: UserProfile) -> ClassificationResult:
    age = require_age(profile)
    thresholds = DEEP_SLEEP_CLASS_THRESHOLDS.lookup(age)
    adjusted = adjusted_deep_sleep(minutes, age)

    if adjusted < thresholds.inadequate:
        classification = "inadequate"
        percentile = min(20, round_half_up(adjusted / thresholds.inadequate * 20))
    elif adjusted < thresholds.borderline:
        classification = "borderline"
        span = thresholds.borderline - thresholds.inadequate
        percentile = 20 + round_half_up((adjusted - thresholds.inadequate) / span * 40)
    else:
        classification = "adequate"
        above = adjusted - thresholds.borderline
        percentile = min(MAX_PERCENTILE, 60 + round_half_up(above / DEEP_SLEEP_ADEQUATE_SPAN * 39))

    return ClassificationResult(
        metric_type="deep_sleep",
        value=minutes,
        classification=classification,
        percentile=_clamp_percentile(percentile),
    )


def classify(metric_type: str, raw_value: float, profile: UserProfile) -> ClassificationResult:
    """Classify a raw HRV (ms) or deep-sleep (minutes) value.

    Raises:
        PreconditionError: If the profile has no age.
        ValueError: For metric types other than ``hrv`` and ``deep_sleep``.
    """
    if metric_type == "hrv":
        return classify_hrv(raw_value, profile)
    if metric_type == "deep_sleep":
        return classify_deep_sleep(raw_value, profile)
    raise ValueError(f"Percentile classification supports hrv and deep_sleep, not {metric_type!r}")


def classify_physiology(
    avg_hrv: float, avg_deep_sleep: float, profile: UserProfile
) -> PhysiologicalClassification:
    """Classify averaged HRV and deep sleep together."""
    return PhysiologicalClassification(
        hrv=classify_hrv(avg_hrv, profile),
        deep_sleep=classify_deep_sleep(avg_deep_sleep, profile),
    )
