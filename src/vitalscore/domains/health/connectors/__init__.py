"""Collaborator interfaces consumed by the scoring pipeline.

The pipeline only talks to these protocols. Concrete implementations are
the in-memory store (tests, no-persistence mode), the encrypted SQLite
repository and the LLM-backed weight advisor.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Any, Protocol, runtime_checkable

from vitalscore.domains.health.domain_logic.score_models import (
    AnomalyEvent,
    Baseline,
    HealthScoreRecord,
    MetricSample,
    PersonalRecord,
    UserProfile,
)


@runtime_checkable
class MetricSource(Protocol):
    """Supplies metric samples, already deduplicated per (user, date, source)."""

    def get_samples(self, user_id: str, start: date, end: date) -> list[MetricSample]:
        """Samples with ``start <= date <= end``, oldest first."""
        ...


@runtime_checkable
class ProfileSource(Protocol):
    def get_profile(self, user_id: str) -> UserProfile | None: ...


@runtime_checkable
class BaselineSource(Protocol):
    def get_baselines(self, user_id: str) -> list[Baseline]: ...


@runtime_checkable
class ResultSink(Protocol):
    """Persists computed results."""

    def upsert_health_score(self, record: HealthScoreRecord) -> None:
        """Insert or overwrite the record for (user_id, date)."""
        ...

    def append_anomaly_events(self, events: list[AnomalyEvent]) -> None: ...


@runtime_checkable
class PersonalRecordStore(Protocol):
    def get_personal_records(self, user_id: str) -> dict[str, PersonalRecord]: ...

    def upsert_personal_record(self, record: PersonalRecord) -> None: ...


# ---------------------------------------------------------------------------
# Weight advisory capability
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class AdvisoryRequest:
    """Everything the weight advisor is allowed to see about a user."""

    age: int
    conditions: tuple[str, ...]
    sufficiency: dict[str, bool] = field(default_factory=dict)

    def cache_key(self) -> str:
        flags = ",".join(f"{k}={int(v)}" for k, v in sorted(self.sufficiency.items()))
        return f"{self.age}|{','.join(sorted(self.conditions))}|{flags}"

    def to_payload(self) -> dict[str, Any]:
        return {
            "age": self.age,
            "conditions": list(self.conditions),
            "sufficient_data": dict(self.sufficiency),
        }


@dataclass(frozen=True)
class AdvisoryResult:
    """Raw (not yet normalized) weights suggested by the advisor."""

    hrv_weight: float
    sleep_weight: float
    recovery_weight: float
    activity_weight: float
    reasoning: str = ""
    provider: str = ""


@runtime_checkable
class WeightAdvisor(Protocol):
    """External reasoning collaborator that suggests component weights.

    Implementations raise ``AdvisoryUnavailableError`` on any failure.
    """

    async def suggest_weights(self, request: AdvisoryRequest) -> AdvisoryResult: ...
