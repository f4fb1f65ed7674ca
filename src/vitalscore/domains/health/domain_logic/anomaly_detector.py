"""Baseline anomaly detection: z-score of today's value against the user's baseline.

A deviation of at least 1.5 sigma is a candidate. Candidates in the adverse
direction (lower HRV, deep sleep, recovery or steps; higher resting heart
rate) are emitted; candidates in the favorable direction are emitted only
from 2.0 sigma. Severity is critical from 2.5 sigma.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Iterable

from vitalscore.domains.health.domain_logic.errors import DegenerateBaselineError
from vitalscore.domains.health.domain_logic.score_models import (
    METRIC_TYPES,
    AnomalyEvent,
    Baseline,
    MetricSample,
)

logger = logging.getLogger(__name__)

CANDIDATE_SIGMA = 1.5
ANY_DIRECTION_SIGMA = 2.0
CRITICAL_SIGMA = 2.5

# +1: a rise is adverse; -1: a drop is adverse.
ADVERSE_DIRECTION = {
    "hrv": -1,
    "deep_sleep": -1,
    "recovery": -1,
    "steps": -1,
    "resting_hr": 1,
}


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def deviation_sigma(value: float, baseline: Baseline) -> float:
    """Signed z-score of ``value`` against ``baseline``.

    Raises:
        DegenerateBaselineError: If the baseline has no positive variance.
    """
    if not baseline.std_deviation or baseline.std_deviation <= 0:
        raise DegenerateBaselineError(
            f"Baseline for {baseline.metric_type} has std_deviation={baseline.std_deviation}"
        )
    return (value - baseline.mean_value) / baseline.std_deviation


def is_adverse(metric_type: str, deviation: float) -> bool:
    direction = ADVERSE_DIRECTION.get(metric_type, 0)
    return deviation * direction > 0


def classify_deviation(metric_type: str, deviation: float) -> str | None:
    """Return the severity to emit, or None when the deviation is not reported."""
    magnitude = abs(deviation)
    if magnitude < CANDIDATE_SIGMA:
        return None
    if not (is_adverse(metric_type, deviation) or magnitude >= ANY_DIRECTION_SIGMA):
        return None
    return "critical" if magnitude >= CRITICAL_SIGMA else "warning"


def detect(
    sample: MetricSample,
    baselines: Iterable[Baseline],
    *,
    clock: Callable[[], datetime] = _utc_now,
) -> list[AnomalyEvent]:
    """Compare one day's raw metrics with the user's baselines.

    Baselines with no current value, zero variance, an unknown metric type,
    or a window reaching the sample's own date are skipped.
    """
    events: list[AnomalyEvent] = []
    detected_at = clock()

    for baseline in baselines:
        if baseline.metric_type not in METRIC_TYPES:
            logger.debug("Ignoring baseline for unknown metric %s", baseline.metric_type)
            continue
        if baseline.window_end is not None and baseline.window_end >= sample.date:
            logger.warning(
                "Skipping %s baseline for user %s: window ends %s, not before %s",
                baseline.metric_type,
                sample.user_id,
                baseline.window_end.isoformat(),
                sample.date.isoformat(),
            )
            continue

        value = sample.value_for(baseline.metric_type)
        if value is None:
            continue

        try:
            deviation = deviation_sigma(value, baseline)
        except DegenerateBaselineError as exc:
            logger.debug("%s", exc)
            continue

        severity = classify_deviation(baseline.metric_type, deviation)
        if severity is None:
            continue

        events.append(AnomalyEvent(
            user_id=sample.user_id,
            metric_type=baseline.metric_type,
            detected_value=value,
            baseline_value=baseline.mean_value,
            deviation_sigma=deviation,
            severity=severity,
            detected_at=detected_at,
        ))

    if events:
        logger.info(
            "Detected %d anomalies for user %s on %s",
            len(events),
            sample.user_id,
            sample.date.isoformat(),
        )
    return events
