"""Composite score: weighted blend of the four sub-scores."""

from __future__ import annotations

import logging
from datetime import date

from vitalscore.domains.health.connectors import ResultSink
from vitalscore.domains.health.domain_logic.reference_curves import clamp, round_half_up
from vitalscore.domains.health.domain_logic.score_models import (
    WEIGHT_SUM_TOLERANCE,
    ComponentScores,
    HealthScoreRecord,
    Weights,
)

logger = logging.getLogger(__name__)

# (lower bound, label), highest first.
SCORE_LABELS = [
    (85, "Excellent"),
    (70, "Good"),
    (55, "Fair"),
    (40, "Needs Attention"),
]


def score(components: ComponentScores, weights: Weights) -> int:
    """Weighted sum of sub-scores, rounded half-up and clamped to [0, 100]."""
    if abs(weights.total() - 1.0) > WEIGHT_SUM_TOLERANCE:
        raise ValueError(f"Weights must sum to 1.0, got {weights.total():.6f}")
    weighted = sum(c * w for c, w in zip(components.as_list(), weights.as_list()))
    return int(clamp(round_half_up(weighted)))


def score_label(overall_score: int) -> str:
    for lower, label in SCORE_LABELS:
        if overall_score >= lower:
            return label
    return "Poor"


class CompositeScorer:
    """Scores a day and upserts the breakdown record through a result sink."""

    def __init__(self, sink: ResultSink) -> None:
        self._sink = sink

    def score_and_persist(
        self,
        user_id: str,
        day: date,
        components: ComponentScores,
        weights: Weights,
    ) -> HealthScoreRecord:
        record = HealthScoreRecord(
            user_id=user_id,
            date=day,
            overall_score=score(components, weights),
            components=components,
            weights=weights,
        )
        self._sink.upsert_health_score(record)
        logger.info(
            "Health score saved: user=%s date=%s score=%d weights=%s",
            user_id,
            day.isoformat(),
            record.overall_score,
            weights.source,
        )
        return record
