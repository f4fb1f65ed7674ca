"""In-memory implementation of every pipeline collaborator except the advisor."""

from __future__ import annotations

import threading
from datetime import date

from vitalscore.domains.health.domain_logic.score_models import (
    AnomalyEvent,
    Baseline,
    HealthScoreRecord,
    MetricSample,
    PersonalRecord,
    UserProfile,
)


class InMemoryHealthStore:
    """Dict-backed store. Used in tests and when no encryption key is set."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._samples: dict[tuple[str, date, str], MetricSample] = {}
        self._profiles: dict[str, UserProfile] = {}
        self._baselines: dict[tuple[str, str], Baseline] = {}
        self._scores: dict[tuple[str, date], HealthScoreRecord] = {}
        self._anomalies: list[AnomalyEvent] = []
        self._records: dict[tuple[str, str, str], PersonalRecord] = {}

    @property
    def data_source(self) -> str:
        return "memory"

    # -- inputs --------------------------------------------------------

    def upsert_sample(self, sample: MetricSample) -> None:
        with self._lock:
            self._samples[(sample.user_id, sample.date, sample.source)] = sample

    def get_samples(self, user_id: str, start: date, end: date) -> list[MetricSample]:
        with self._lock:
            rows = [
                s for (uid, d, _), s in self._samples.items()
                if uid == user_id and start <= d <= end
            ]
        return sorted(rows, key=lambda s: (s.date, s.source))

    def set_profile(self, user_id: str, profile: UserProfile) -> None:
        with self._lock:
            self._profiles[user_id] = profile

    def get_profile(self, user_id: str) -> UserProfile | None:
        return self._profiles.get(user_id)

    def upsert_baseline(self, baseline: Baseline) -> None:
        with self._lock:
            self._baselines[(baseline.user_id, baseline.metric_type)] = baseline

    def get_baselines(self, user_id: str) -> list[Baseline]:
        with self._lock:
            return [b for (uid, _), b in sorted(self._baselines.items()) if uid == user_id]

    # -- results -------------------------------------------------------

    def upsert_health_score(self, record: HealthScoreRecord) -> None:
        with self._lock:
            self._scores[(record.user_id, record.date)] = record

    def get_health_score(self, user_id: str, day: date) -> HealthScoreRecord | None:
        return self._scores.get((user_id, day))

    def get_health_scores(
        self, user_id: str, *, since: date | None = None, limit: int = 90
    ) -> list[HealthScoreRecord]:
        with self._lock:
            rows = [
                r for (uid, d), r in self._scores.items()
                if uid == user_id and (since is None or d >= since)
            ]
        return sorted(rows, key=lambda r: r.date, reverse=True)[:limit]

    def append_anomaly_events(self, events: list[AnomalyEvent]) -> None:
        with self._lock:
            self._anomalies.extend(events)

    def get_anomaly_events(self, user_id: str, *, limit: int = 50) -> list[AnomalyEvent]:
        with self._lock:
            rows = [e for e in self._anomalies if e.user_id == user_id]
        return list(reversed(rows))[:limit]

    def get_personal_records(self, user_id: str) -> dict[str, PersonalRecord]:
        with self._lock:
            return {
                rtype: r for (uid, rtype, _), r in self._records.items() if uid == user_id
            }

    def upsert_personal_record(self, record: PersonalRecord) -> None:
        with self._lock:
            self._records[(record.user_id, record.record_type, record.record_scope)] = record

    def delete_user_data(self, user_id: str) -> int:
        with self._lock:
            buckets = [self._samples, self._baselines, self._scores, self._records]
            total = 0
            for bucket in buckets:
                doomed = [key for key in bucket if key[0] == user_id]
                for key in doomed:
                    del bucket[key]
                total += len(doomed)
            if self._profiles.pop(user_id, None) is not None:
                total += 1
            kept = [e for e in self._anomalies if e.user_id != user_id]
            total += len(self._anomalies) - len(kept)
            self._anomalies = kept
        return total
