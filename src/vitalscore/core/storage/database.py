"""SQLite database management for the VitalScore store.

Handles connection lifecycle, schema creation, and migrations.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from pathlib import Path

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 2

# ---------------------------------------------------------------------------
# Schema DDL
# ---------------------------------------------------------------------------

_SCHEMA_V1 = """
-- One row per user, day and wearable source; raw values are encrypted
CREATE TABLE IF NOT EXISTS metric_samples (
    id           TEXT PRIMARY KEY,
    user_id      TEXT NOT NULL,
    sample_date  TEXT NOT NULL,
    source       TEXT NOT NULL,
    payload_enc  TEXT NOT NULL,
    created_at   TEXT NOT NULL DEFAULT (datetime('now')),
    UNIQUE (user_id, sample_date, source)
);

CREATE TABLE IF NOT EXISTS user_profiles (
    user_id         TEXT PRIMARY KEY,
    age             INTEGER,
    sex             TEXT NOT NULL DEFAULT 'other',
    conditions_enc  TEXT,
    updated_at      TEXT NOT NULL DEFAULT (datetime('now'))
);

-- Computed upstream; read-only to the scorer
CREATE TABLE IF NOT EXISTS baselines (
    user_id        TEXT NOT NULL,
    metric_type    TEXT NOT NULL,
    mean_value     REAL NOT NULL,
    std_deviation  REAL NOT NULL,
    sample_count   INTEGER,
    window_end     TEXT,
    updated_at     TEXT NOT NULL DEFAULT (datetime('now')),
    PRIMARY KEY (user_id, metric_type)
);

-- At most one score per user per day
CREATE TABLE IF NOT EXISTS health_scores (
    user_id           TEXT NOT NULL,
    score_date        TEXT NOT NULL,
    overall_score     INTEGER NOT NULL,
    hrv_score         REAL NOT NULL,
    sleep_score       REAL NOT NULL,
    recovery_score    REAL NOT NULL,
    activity_score    REAL NOT NULL,
    hrv_weight        REAL NOT NULL,
    sleep_weight      REAL NOT NULL,
    recovery_weight   REAL NOT NULL,
    activity_weight   REAL NOT NULL,
    weight_source     TEXT NOT NULL,
    weight_reasoning  TEXT,
    details_json      TEXT,
    updated_at        TEXT NOT NULL DEFAULT (datetime('now')),
    PRIMARY KEY (user_id, score_date)
);

-- Append-only
CREATE TABLE IF NOT EXISTS anomaly_events (
    id               TEXT PRIMARY KEY,
    user_id          TEXT NOT NULL,
    metric_type      TEXT NOT NULL,
    detected_value   REAL NOT NULL,
    baseline_value   REAL NOT NULL,
    deviation_sigma  REAL NOT NULL,
    severity         TEXT NOT NULL,
    detected_at      TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS personal_records (
    user_id          TEXT NOT NULL,
    record_type      TEXT NOT NULL,
    record_scope     TEXT NOT NULL DEFAULT 'all_time',
    record_value     REAL NOT NULL,
    previous_record  REAL,
    achieved_date    TEXT NOT NULL,
    PRIMARY KEY (user_id, record_type, record_scope)
);

CREATE TABLE IF NOT EXISTS schema_version (
    version    INTEGER NOT NULL,
    applied_at TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE INDEX IF NOT EXISTS idx_samples_user_date  ON metric_samples(user_id, sample_date);
CREATE INDEX IF NOT EXISTS idx_scores_user_date   ON health_scores(user_id, score_date);
CREATE INDEX IF NOT EXISTS idx_anomalies_user     ON anomaly_events(user_id, detected_at);
"""

# ---------------------------------------------------------------------------
# V2: Audit log (tool access + advisory disclosure tracking)
# ---------------------------------------------------------------------------

_SCHEMA_V2 = """
CREATE TABLE IF NOT EXISTS audit_log (
    id              TEXT PRIMARY KEY,
    timestamp       TEXT NOT NULL DEFAULT (datetime('now')),
    action          TEXT NOT NULL,
    tool_name       TEXT,
    tool_input_hash TEXT,
    user_id_hash    TEXT,
    llm_provider    TEXT,
    llm_disclosed   INTEGER DEFAULT 0,
    weight_source   TEXT,
    duration_ms     REAL,
    status          TEXT NOT NULL DEFAULT 'success',
    error_type      TEXT,
    metadata_json   TEXT
);

CREATE INDEX IF NOT EXISTS idx_audit_timestamp ON audit_log(timestamp);
CREATE INDEX IF NOT EXISTS idx_audit_action    ON audit_log(action);
CREATE INDEX IF NOT EXISTS idx_audit_tool      ON audit_log(tool_name);
"""


class DatabaseError(Exception):
    """Raised when database operations fail."""


class HealthDatabase:
    """SQLite database manager.

    Supports both file-based and in-memory (`:memory:`) databases.
    In-memory mode is used for testing.

    Usage::

        db = HealthDatabase(":memory:")
        db.initialize()
        conn = db.connection
        # ... use connection ...
        db.close()
    """

    def __init__(self, db_path: str = ":memory:") -> None:
        self._db_path = db_path
        self._conn: sqlite3.Connection | None = None
        # Serializes multi-statement writes; tool calls may run in worker threads.
        self.write_lock = threading.RLock()

    @property
    def connection(self) -> sqlite3.Connection:
        """Get the active database connection.

        Raises:
            DatabaseError: If the database has not been initialized.
        """
        if self._conn is None:
            raise DatabaseError("Database not initialized. Call initialize() first.")
        return self._conn

    def initialize(self) -> None:
        """Create the database connection and ensure schema exists.

        For file-based databases, creates parent directories if needed.
        Idempotent: safe to call multiple times.
        """
        if self._conn is not None:
            return

        if self._db_path != ":memory:":
            db_file = Path(self._db_path).expanduser()
            db_file.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(str(db_file), check_same_thread=False)
        else:
            self._conn = sqlite3.connect(":memory:", check_same_thread=False)

        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA foreign_keys=ON")

        self._ensure_schema()
        logger.info("Health database initialized: %s", self._db_path)

    def _ensure_schema(self) -> None:
        """Create tables if they don't exist and apply migrations."""
        conn = self.connection

        conn.executescript(_SCHEMA_V1)

        row = conn.execute("SELECT MAX(version) FROM schema_version").fetchone()
        current_version = row[0] if row[0] is not None else 0

        if current_version < 2:
            conn.executescript(_SCHEMA_V2)
            logger.info("Applied schema migration V2: audit_log table")

        if current_version < SCHEMA_VERSION:
            conn.execute(
                "INSERT INTO schema_version (version) VALUES (?)",
                (SCHEMA_VERSION,),
            )
            conn.commit()
            logger.info(
                "Schema updated from version %d to %d", current_version, SCHEMA_VERSION
            )

    def get_schema_version(self) -> int:
        row = self.connection.execute("SELECT MAX(version) FROM schema_version").fetchone()
        return row[0] if row[0] is not None else 0

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None
            logger.info("Health database closed")

    def __enter__(self) -> HealthDatabase:
        self.initialize()
        return self

    def __exit__(self, *args) -> None:
        self.close()
