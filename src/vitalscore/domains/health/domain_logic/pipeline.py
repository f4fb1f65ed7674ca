"""Scoring pipeline: one user, one day.

Reads the profile and a lookback window of samples, merges the target
day's samples into a single snapshot, then scores, persists, detects
anomalies and updates personal records.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Callable

from vitalscore.domains.health.connectors import (
    BaselineSource,
    MetricSource,
    PersonalRecordStore,
    ProfileSource,
    ResultSink,
)
from vitalscore.domains.health.domain_logic.anomaly_detector import detect
from vitalscore.domains.health.domain_logic.composite_scorer import CompositeScorer
from vitalscore.domains.health.domain_logic.errors import NoDataError
from vitalscore.domains.health.domain_logic.normalizer import (
    compute_component_scores,
    require_age,
)
from vitalscore.domains.health.domain_logic.personal_records import detect_personal_records
from vitalscore.domains.health.domain_logic.score_models import (
    SAMPLE_FIELDS,
    AnomalyEvent,
    HealthScoreRecord,
    MetricSample,
    PersonalRecord,
)
from vitalscore.domains.health.domain_logic.weight_resolver import WeightResolver

logger = logging.getLogger(__name__)


@dataclass
class ScoringResult:
    """Everything one pipeline run produced."""

    record: HealthScoreRecord
    anomalies: list[AnomalyEvent] = field(default_factory=list)
    new_records: list[PersonalRecord] = field(default_factory=list)
    samples_considered: int = 0


def merge_day(samples: list[MetricSample], user_id: str, day: date) -> MetricSample:
    """Combine one day's samples from several sources into one snapshot.

    Sources are visited in name order and the first non-null value of each
    field wins.
    """
    merged: dict[str, float | None] = {name: None for name in SAMPLE_FIELDS}
    sources: list[str] = []
    for sample in sorted(samples, key=lambda s: s.source):
        sources.append(sample.source)
        for name, value in sample.metrics().items():
            if merged[name] is None and value is not None:
                merged[name] = value
    return MetricSample(user_id=user_id, date=day, source="+".join(sources), **merged)


class HealthScoringPipeline:
    """Runs the full scoring flow against injected collaborators.

    Usage::

        pipeline = HealthScoringPipeline(
            metrics=store, profiles=store, baselines=store, sink=store,
            weight_resolver=WeightResolver(),
        )
        result = await pipeline.run("user-1", date(2026, 3, 1))
    """

    def __init__(
        self,
        *,
        metrics: MetricSource,
        profiles: ProfileSource,
        baselines: BaselineSource,
        sink: ResultSink,
        weight_resolver: WeightResolver,
        record_store: PersonalRecordStore | None = None,
        lookback_days: int = 30,
        today: Callable[[], date] = lambda: datetime.now(timezone.utc).date(),
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self._metrics = metrics
        self._profiles = profiles
        self._baselines = baselines
        self._sink = sink
        self._resolver = weight_resolver
        self._records = record_store
        self._lookback_days = lookback_days
        self._today = today
        self._clock = clock
        self._scorer = CompositeScorer(sink)

    @property
    def advisory_enabled(self) -> bool:
        return self._resolver.advisory_enabled

    async def run(self, user_id: str, target_date: date | None = None) -> ScoringResult:
        """Score ``user_id`` for ``target_date`` (default: latest sample date).

        Raises:
            PreconditionError: Missing profile or age.
            NoDataError: No samples in the window, or none on the target date.
        """
        profile = self._profiles.get_profile(user_id)
        require_age(profile)

        end = target_date or self._today()
        start = end - timedelta(days=self._lookback_days - 1)
        window = self._metrics.get_samples(user_id, start, end)
        if not window:
            raise NoDataError(
                f"No health metrics found between {start.isoformat()} and {end.isoformat()}"
            )

        day = target_date or max(s.date for s in window)
        todays = [s for s in window if s.date == day]
        if not todays:
            raise NoDataError(f"No health metrics found for {day.isoformat()}")

        snapshot = merge_day(todays, user_id, day)
        components = compute_component_scores(snapshot, profile)
        weights = await self._resolver.resolve_weights(profile, window, as_of=day)
        record = self._scorer.score_and_persist(user_id, day, components, weights)

        anomalies = detect(snapshot, self._baselines.get_baselines(user_id), clock=self._clock)
        if anomalies:
            self._sink.append_anomaly_events(anomalies)

        new_records: list[PersonalRecord] = []
        if self._records is not None:
            new_records = detect_personal_records(
                snapshot, self._records.get_personal_records(user_id)
            )
            for pr in new_records:
                self._records.upsert_personal_record(pr)

        logger.info(
            "Scoring run complete: user=%s date=%s samples=%d anomalies=%d records=%d",
            user_id,
            day.isoformat(),
            len(window),
            len(anomalies),
            len(new_records),
        )
        return ScoringResult(
            record=record,
            anomalies=anomalies,
            new_records=new_records,
            samples_considered=len(window),
        )
