"""Physiological reference tables and the piecewise-linear curve they feed.

Every age/sex dependent threshold used by the normalizer and the percentile
classifier lives here as data. Adding an age band or moving a threshold is
a table edit; the scoring code does not branch on ages.
"""

from __future__ import annotations

import math
from bisect import bisect_right
from dataclasses import dataclass
from typing import Generic, Sequence, TypeVar

T = TypeVar("T")


def clamp(value: float, lo: float = 0.0, hi: float = 100.0) -> float:
    """Clamp a value to [lo, hi]."""
    return max(lo, min(hi, value))


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero for positives."""
    return int(math.floor(value + 0.5))


# ---------------------------------------------------------------------------
# Curve primitive
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ReferenceCurve:
    """Monotonic piecewise-linear map from a raw value to an output.

    ``breakpoints`` are ``(threshold, output)`` pairs with strictly
    increasing thresholds and non-decreasing outputs. Inputs below the first
    threshold return the first output; inputs above the last return the
    last output.
    """

    breakpoints: tuple[tuple[float, float], ...]

    def __post_init__(self) -> None:
        if len(self.breakpoints) < 2:
            raise ValueError("A reference curve needs at least two breakpoints")
        for (x0, y0), (x1, y1) in zip(self.breakpoints, self.breakpoints[1:]):
            if x1 <= x0:
                raise ValueError(f"Thresholds must increase: {x0} then {x1}")
            if y1 < y0:
                raise ValueError(f"Outputs must not decrease: {y0} then {y1}")

    def __call__(self, value: float) -> float:
        xs = [x for x, _ in self.breakpoints]
        if value <= xs[0]:
            return self.breakpoints[0][1]
        if value >= xs[-1]:
            return self.breakpoints[-1][1]
        i = bisect_right(xs, value)
        (x0, y0), (x1, y1) = self.breakpoints[i - 1], self.breakpoints[i]
        return y0 + (value - x0) / (x1 - x0) * (y1 - y0)


def three_segment_curve(low: float, high: float) -> ReferenceCurve:
    """0-40 below ``low``, 40-70 between ``low`` and ``high``, 70-100 above.

    Half of ``high`` worth of excess maps onto the last 30 points, so the
    top segment saturates at ``1.5 * high``.
    """
    return ReferenceCurve(((0.0, 0.0), (low, 40.0), (high, 70.0), (high * 1.5, 100.0)))


@dataclass(frozen=True)
class AgeBandTable(Generic[T]):
    """Rows keyed by exclusive upper age bounds; the last row is open-ended."""

    upper_bounds: tuple[int, ...]
    rows: tuple[T, ...]

    def __post_init__(self) -> None:
        if len(self.rows) != len(self.upper_bounds) + 1:
            raise ValueError("An age band table needs one more row than bounds")
        if list(self.upper_bounds) != sorted(set(self.upper_bounds)):
            raise ValueError("Age bounds must be strictly increasing")

    def lookup(self, age: int) -> T:
        return self.rows[bisect_right(self.upper_bounds, age)]


def for_sex(pair: tuple[T, T], sex: str) -> T:
    """Pick the male or female entry; "other" uses the female reference."""
    male, female = pair
    return male if sex == "male" else female


# ---------------------------------------------------------------------------
# Condition penalties (applied multiplicatively to raw HRV)
# ---------------------------------------------------------------------------

HRV_CONDITION_FACTORS = {
    "heart_failure": 0.85,
    "diabetes": 0.92,
    "chronic_kidney_disease": 0.88,
}


def hrv_condition_factor(conditions: Sequence[str] | frozenset[str]) -> float:
    """Combined multiplicative penalty. Multiplication commutes, so order is irrelevant."""
    factor = 1.0
    for condition in sorted(conditions):
        factor *= HRV_CONDITION_FACTORS.get(condition, 1.0)
    return factor


# Deep sleep minutes are inflated by this factor for users older than 60.
OLDER_ADULT_AGE = 60
OLDER_ADULT_SLEEP_FACTOR = 1.10


def adjusted_deep_sleep(minutes: float, age: int) -> float:
    return minutes * OLDER_ADULT_SLEEP_FACTOR if age > OLDER_ADULT_AGE else minutes


# ---------------------------------------------------------------------------
# Scoring curves (normalizer)
# ---------------------------------------------------------------------------

# (low, high) RMSSD thresholds in ms, as (male, female) per age band.
HRV_SCORING_THRESHOLDS: AgeBandTable[tuple[tuple[float, float], tuple[float, float]]] = AgeBandTable(
    upper_bounds=(30, 40, 50, 60),
    rows=(
        ((55.0, 80.0), (52.0, 78.0)),
        ((40.0, 62.0), (37.0, 56.0)),
        ((30.0, 48.0), (28.0, 44.0)),
        ((24.0, 40.0), (22.0, 36.0)),
        ((20.0, 36.0), (18.0, 32.0)),
    ),
)

# Target deep-sleep minutes per age band.
DEEP_SLEEP_TARGETS: AgeBandTable[float] = AgeBandTable(
    upper_bounds=(40, 60),
    rows=(100.0, 85.0, 70.0),
)

# 85 points at 10k steps, plus one per extra 1000 steps up to 100.
STEPS_CURVE = ReferenceCurve((
    (0.0, 0.0),
    (5000.0, 50.0),
    (7500.0, 70.0),
    (10000.0, 85.0),
    (25000.0, 100.0),
))

# (bpm bound, inclusive, adjustment) checked in order; first match wins.
# The >90 band is listed before >80 so it is reachable.
RESTING_HR_ADJUSTMENTS: tuple[tuple[str, float, float], ...] = (
    ("gt", 90.0, -20.0),
    ("gt", 80.0, -10.0),
    ("lt", 60.0, 10.0),
    ("lt", 70.0, 5.0),
)


def hrv_scoring_curve(age: int, sex: str) -> tuple[ReferenceCurve, float, float]:
    low, high = for_sex(HRV_SCORING_THRESHOLDS.lookup(age), sex)
    return three_segment_curve(low, high), low, high


def deep_sleep_scoring_curve(age: int) -> tuple[ReferenceCurve, float]:
    target = DEEP_SLEEP_TARGETS.lookup(age)
    return three_segment_curve(target * 0.6, target), target


def resting_hr_adjustment(bpm: float) -> float:
    for op, bound, adjustment in RESTING_HR_ADJUSTMENTS:
        if (op == "gt" and bpm > bound) or (op == "lt" and bpm < bound):
            return adjustment
    return 0.0


# ---------------------------------------------------------------------------
# Population percentile tables (classifier)
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PercentileTable:
    """Five named population percentiles of a metric."""

    p5: float
    p25: float
    p50: float
    p75: float
    p95: float

    def points(self) -> tuple[tuple[float, int], ...]:
        return ((self.p5, 5), (self.p25, 25), (self.p50, 50), (self.p75, 75), (self.p95, 95))


# RMSSD HRV percentiles from 24h Holter reference populations, (male, female).
HRV_PERCENTILES: AgeBandTable[tuple[PercentileTable, PercentileTable]] = AgeBandTable(
    upper_bounds=(30, 40, 50, 60, 70),
    rows=(
        (PercentileTable(39, 55, 67.5, 80, 96), PercentileTable(37, 52, 66, 78, 95)),
        (PercentileTable(29, 40, 51, 62, 73), PercentileTable(27, 37, 46.5, 56, 66)),
        (PercentileTable(22, 30, 39.5, 48, 57), PercentileTable(20, 28, 36, 44, 52)),
        (PercentileTable(17, 24, 32.5, 40, 48), PercentileTable(15, 22, 29, 36, 43)),
        (PercentileTable(14, 20, 28, 36, 44), PercentileTable(12, 18, 25, 32, 39)),
        (PercentileTable(12, 17, 24, 31, 38), PercentileTable(10, 15, 21, 27, 33)),
    ),
)


@dataclass(frozen=True)
class DeepSleepThresholds:
    """Minutes below ``inadequate`` are inadequate; below ``borderline``, borderline."""

    inadequate: float
    borderline: float


DEEP_SLEEP_CLASS_THRESHOLDS: AgeBandTable[DeepSleepThresholds] = AgeBandTable(
    upper_bounds=(30, 45, 60),
    rows=(
        DeepSleepThresholds(60, 90),
        DeepSleepThresholds(50, 75),
        DeepSleepThresholds(40, 60),
        DeepSleepThresholds(30, 50),
    ),
)

# Minutes above the borderline threshold that span the 60th-99th percentile.
DEEP_SLEEP_ADEQUATE_SPAN = 60.0
