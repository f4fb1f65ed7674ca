"""Health data repository: CRUD over the encrypted SQLite store.

Implements every source and sink protocol the scoring pipeline consumes,
so a single ``HealthRepository`` can back a server. Raw metric values and
conditions go through ``FieldEncryptor``; computed results stay plain.
"""

from __future__ import annotations

import json
import logging
import uuid
from datetime import date, datetime
from typing import Any

from vitalscore.core.storage.database import HealthDatabase
from vitalscore.core.storage.encryption import FieldEncryptor
from vitalscore.domains.health.domain_logic.score_models import (
    SAMPLE_FIELDS,
    AnomalyEvent,
    Baseline,
    ComponentScores,
    HealthScoreRecord,
    MetricSample,
    PersonalRecord,
    UserProfile,
    Weights,
)

logger = logging.getLogger(__name__)


class RepositoryError(Exception):
    """Raised when repository operations fail."""


class HealthRepository:
    """Encrypted store for samples, profiles, baselines and results.

    Usage::

        db = HealthDatabase(":memory:")
        db.initialize()
        repo = HealthRepository(db, FieldEncryptor(key="..."))

        repo.upsert_sample(sample)
        repo.get_samples("user-1", date(2026, 3, 1), date(2026, 3, 30))
    """

    def __init__(self, database: HealthDatabase, encryptor: FieldEncryptor) -> None:
        self._db = database
        self._enc = encryptor

    @property
    def data_source(self) -> str:
        return "sqlite"

    @staticmethod
    def _new_id() -> str:
        return str(uuid.uuid4())

    # ------------------------------------------------------------------
    # Metric samples
    # ------------------------------------------------------------------

    def upsert_sample(self, sample: MetricSample) -> None:
        """Insert or replace the sample for (user_id, date, source)."""
        conn = self._db.connection
        with self._db.write_lock:
            conn.execute(
                """INSERT INTO metric_samples (id, user_id, sample_date, source, payload_enc)
                   VALUES (?, ?, ?, ?, ?)
                   ON CONFLICT (user_id, sample_date, source)
                   DO UPDATE SET payload_enc = excluded.payload_enc,
                                 created_at = datetime('now')""",
                (
                    self._new_id(),
                    sample.user_id,
                    sample.date.isoformat(),
                    sample.source,
                    self._enc.encrypt(sample.metrics()),
                ),
            )
            conn.commit()
        logger.debug("Stored sample user=%s date=%s source=%s",
                     sample.user_id, sample.date.isoformat(), sample.source)

    def get_samples(self, user_id: str, start: date, end: date) -> list[MetricSample]:
        rows = self._db.connection.execute(
            """SELECT * FROM metric_samples
               WHERE user_id = ? AND sample_date >= ? AND sample_date <= ?
               ORDER BY sample_date ASC, source ASC""",
            (user_id, start.isoformat(), end.isoformat()),
        ).fetchall()
        return [self._row_to_sample(row) for row in rows]

    def count_samples(self, user_id: str | None = None) -> int:
        if user_id is None:
            row = self._db.connection.execute("SELECT COUNT(*) FROM metric_samples").fetchone()
        else:
            row = self._db.connection.execute(
                "SELECT COUNT(*) FROM metric_samples WHERE user_id = ?", (user_id,)
            ).fetchone()
        return row[0]

    def _row_to_sample(self, row: Any) -> MetricSample:
        payload = self._enc.decrypt(row["payload_enc"]) or {}
        return MetricSample(
            user_id=row["user_id"],
            date=date.fromisoformat(row["sample_date"]),
            source=row["source"],
            **{name: payload.get(name) for name in SAMPLE_FIELDS},
        )

    # ------------------------------------------------------------------
    # Profiles
    # ------------------------------------------------------------------

    def set_profile(self, user_id: str, profile: UserProfile) -> None:
        conn = self._db.connection
        with self._db.write_lock:
            conn.execute(
                """INSERT INTO user_profiles (user_id, age, sex, conditions_enc)
                   VALUES (?, ?, ?, ?)
                   ON CONFLICT (user_id)
                   DO UPDATE SET age = excluded.age, sex = excluded.sex,
                                 conditions_enc = excluded.conditions_enc,
                                 updated_at = datetime('now')""",
                (
                    user_id,
                    profile.age,
                    profile.sex,
                    self._enc.encrypt(sorted(profile.conditions)),
                ),
            )
            conn.commit()

    def get_profile(self, user_id: str) -> UserProfile | None:
        row = self._db.connection.execute(
            "SELECT * FROM user_profiles WHERE user_id = ?", (user_id,)
        ).fetchone()
        if row is None:
            return None
        conditions = self._enc.decrypt(row["conditions_enc"]) or []
        return UserProfile(age=row["age"], sex=row["sex"], conditions=frozenset(conditions))

    # ------------------------------------------------------------------
    # Baselines
    # ------------------------------------------------------------------

    def upsert_baseline(self, baseline: Baseline) -> None:
        conn = self._db.connection
        with self._db.write_lock:
            conn.execute(
                """INSERT INTO baselines
                   (user_id, metric_type, mean_value, std_deviation, sample_count, window_end)
                   VALUES (?, ?, ?, ?, ?, ?)
                   ON CONFLICT (user_id, metric_type)
                   DO UPDATE SET mean_value = excluded.mean_value,
                                 std_deviation = excluded.std_deviation,
                                 sample_count = excluded.sample_count,
                                 window_end = excluded.window_end,
                                 updated_at = datetime('now')""",
                (
                    baseline.user_id,
                    baseline.metric_type,
                    baseline.mean_value,
                    baseline.std_deviation,
                    baseline.sample_count,
                    baseline.window_end.isoformat() if baseline.window_end else None,
                ),
            )
            conn.commit()

    def get_baselines(self, user_id: str) -> list[Baseline]:
        rows = self._db.connection.execute(
            "SELECT * FROM baselines WHERE user_id = ? ORDER BY metric_type", (user_id,)
        ).fetchall()
        return [
            Baseline(
                user_id=row["user_id"],
                metric_type=row["metric_type"],
                mean_value=row["mean_value"],
                std_deviation=row["std_deviation"],
                sample_count=row["sample_count"],
                window_end=date.fromisoformat(row["window_end"]) if row["window_end"] else None,
            )
            for row in rows
        ]

    # ------------------------------------------------------------------
    # Health scores
    # ------------------------------------------------------------------

    def upsert_health_score(self, record: HealthScoreRecord) -> None:
        """Write the score for (user_id, date), replacing any earlier one."""
        c, w = record.components, record.weights
        conn = self._db.connection
        with self._db.write_lock:
            conn.execute(
                """INSERT OR REPLACE INTO health_scores (
                    user_id, score_date, overall_score,
                    hrv_score, sleep_score, recovery_score, activity_score,
                    hrv_weight, sleep_weight, recovery_weight, activity_weight,
                    weight_source, weight_reasoning, details_json
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    record.user_id,
                    record.date.isoformat(),
                    record.overall_score,
                    c.hrv_score,
                    c.sleep_score,
                    c.recovery_score,
                    c.activity_score,
                    w.hrv_weight,
                    w.sleep_weight,
                    w.recovery_weight,
                    w.activity_weight,
                    w.source,
                    w.reasoning,
                    json.dumps(c.details, sort_keys=True, separators=(",", ":")),
                ),
            )
            conn.commit()

    def get_health_score(self, user_id: str, day: date) -> HealthScoreRecord | None:
        row = self._db.connection.execute(
            "SELECT * FROM health_scores WHERE user_id = ? AND score_date = ?",
            (user_id, day.isoformat()),
        ).fetchone()
        return self._row_to_score(row) if row is not None else None

    def get_health_scores(
        self, user_id: str, *, since: date | None = None, limit: int = 90
    ) -> list[HealthScoreRecord]:
        """Score history for a user, newest first."""
        query = "SELECT * FROM health_scores WHERE user_id = ?"
        params: list[Any] = [user_id]
        if since is not None:
            query += " AND score_date >= ?"
            params.append(since.isoformat())
        query += " ORDER BY score_date DESC LIMIT ?"
        params.append(limit)
        rows = self._db.connection.execute(query, params).fetchall()
        return [self._row_to_score(row) for row in rows]

    @staticmethod
    def _row_to_score(row: Any) -> HealthScoreRecord:
        return HealthScoreRecord(
            user_id=row["user_id"],
            date=date.fromisoformat(row["score_date"]),
            overall_score=row["overall_score"],
            components=ComponentScores(
                hrv_score=row["hrv_score"],
                sleep_score=row["sleep_score"],
                recovery_score=row["recovery_score"],
                activity_score=row["activity_score"],
                details=json.loads(row["details_json"]) if row["details_json"] else {},
            ),
            weights=Weights(
                hrv_weight=row["hrv_weight"],
                sleep_weight=row["sleep_weight"],
                recovery_weight=row["recovery_weight"],
                activity_weight=row["activity_weight"],
                reasoning=row["weight_reasoning"] or "",
                source=row["weight_source"],
            ),
        )

    # ------------------------------------------------------------------
    # Anomaly events (append-only)
    # ------------------------------------------------------------------

    def append_anomaly_events(self, events: list[AnomalyEvent]) -> None:
        if not events:
            return
        conn = self._db.connection
        with self._db.write_lock:
            conn.executemany(
                """INSERT INTO anomaly_events
                   (id, user_id, metric_type, detected_value, baseline_value,
                    deviation_sigma, severity, detected_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
                [
                    (
                        self._new_id(),
                        e.user_id,
                        e.metric_type,
                        e.detected_value,
                        e.baseline_value,
                        e.deviation_sigma,
                        e.severity,
                        e.detected_at.isoformat(),
                    )
                    for e in events
                ],
            )
            conn.commit()
        logger.info("Stored %d anomaly events", len(events))

    def get_anomaly_events(self, user_id: str, *, limit: int = 50) -> list[AnomalyEvent]:
        """Most recent events first."""
        rows = self._db.connection.execute(
            """SELECT * FROM anomaly_events WHERE user_id = ?
               ORDER BY detected_at DESC, rowid DESC LIMIT ?""",
            (user_id, limit),
        ).fetchall()
        return [
            AnomalyEvent(
                user_id=row["user_id"],
                metric_type=row["metric_type"],
                detected_value=row["detected_value"],
                baseline_value=row["baseline_value"],
                deviation_sigma=row["deviation_sigma"],
                severity=row["severity"],
                detected_at=datetime.fromisoformat(row["detected_at"]),
            )
            for row in rows
        ]

    # ------------------------------------------------------------------
    # Personal records
    # ------------------------------------------------------------------

    def get_personal_records(self, user_id: str) -> dict[str, PersonalRecord]:
        rows = self._db.connection.execute(
            "SELECT * FROM personal_records WHERE user_id = ? AND record_scope = 'all_time'",
            (user_id,),
        ).fetchall()
        return {
            row["record_type"]: PersonalRecord(
                user_id=row["user_id"],
                record_type=row["record_type"],
                record_value=row["record_value"],
                previous_record=row["previous_record"],
                achieved_date=date.fromisoformat(row["achieved_date"]),
                record_scope=row["record_scope"],
            )
            for row in rows
        }

    def upsert_personal_record(self, record: PersonalRecord) -> None:
        conn = self._db.connection
        with self._db.write_lock:
            conn.execute(
                """INSERT OR REPLACE INTO personal_records
                   (user_id, record_type, record_scope, record_value,
                    previous_record, achieved_date)
                   VALUES (?, ?, ?, ?, ?, ?)""",
                (
                    record.user_id,
                    record.record_type,
                    record.record_scope,
                    record.record_value,
                    record.previous_record,
                    record.achieved_date.isoformat(),
                ),
            )
            conn.commit()

    # ------------------------------------------------------------------
    # Deletion
    # ------------------------------------------------------------------

    def delete_user_data(self, user_id: str) -> int:
        """Remove every row belonging to ``user_id``. Returns rows deleted."""
        tables = (
            "metric_samples",
            "user_profiles",
            "baselines",
            "health_scores",
            "anomaly_events",
            "personal_records",
        )
        conn = self._db.connection
        total = 0
        with self._db.write_lock:
            try:
                for table in tables:
                    total += conn.execute(
                        f"DELETE FROM {table} WHERE user_id = ?", (user_id,)
                    ).rowcount
                conn.commit()
            except Exception as exc:
                conn.rollback()
                raise RepositoryError(f"Failed to delete data for user: {exc}") from exc
        logger.info("Deleted %d rows for a user", total)
        return total
