"""Audit logger: PHI-free access trail and advisory disclosure tracking.

Every tool invocation is recorded in ``audit_log``:

* ``tool_input_hash`` is a SHA-256 of canonical JSON; raw inputs never land here.
* ``user_id_hash`` lets a user's trail be queried without storing the id.
* ``llm_disclosed`` marks calls where profile facts were sent to an
  external weight advisor.
"""

from __future__ import annotations

import hashlib
import json
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from vitalscore.core.storage.database import HealthDatabase

logger = logging.getLogger(__name__)


def hash_value(data: Any) -> str:
    """SHA-256 of canonical JSON, or ``""`` if ``data`` is not serializable."""
    try:
        canonical = json.dumps(data, sort_keys=True, separators=(",", ":"))
    except (TypeError, ValueError):
        return ""
    return hashlib.sha256(canonical.encode()).hexdigest()


@dataclass
class AuditEvent:
    """A single audit log entry."""

    action: str                          # 'tool_invocation' | 'data_delete'
    tool_name: str = ""
    tool_input_hash: str = ""
    user_id_hash: str = ""
    llm_provider: str | None = None
    llm_disclosed: bool = False          # True if the advisor saw profile facts
    weight_source: str | None = None     # 'default' | 'advisory' | 'fallback'
    duration_ms: float | None = None
    status: str = "success"
    error_type: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


class AuditLogger:
    """Records audit events to the ``audit_log`` SQLite table.

    All writes are committed immediately so no entry is lost on crash.

    Usage::

        audit = AuditLogger(health_db)
        audit.log_tool_call(
            "calculate_health_score",
            {"user_id": "u1", "date": "2026-03-01"},
            user_id="u1",
            llm_provider="anthropic",
            llm_disclosed=True,
            weight_source="advisory",
        )
    """

    def __init__(self, database: HealthDatabase) -> None:
        self._db = database

    # ---------------------------------------------------------------
    # Write
    # ---------------------------------------------------------------

    def log_event(self, event: AuditEvent) -> str:
        """Insert an audit event and return its id, or ``""`` if the write failed."""
        event_id = str(uuid.uuid4())
        now = datetime.now(timezone.utc).isoformat()
        metadata_json = (
            json.dumps(event.metadata, sort_keys=True, separators=(",", ":"))
            if event.metadata
            else None
        )

        try:
            conn = self._db.connection
            with self._db.write_lock:
                conn.execute(
                    """INSERT INTO audit_log
                       (id, timestamp, action, tool_name, tool_input_hash, user_id_hash,
                        llm_provider, llm_disclosed, weight_source,
                        duration_ms, status, error_type, metadata_json)
                       VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                    (
                        event_id,
                        now,
                        event.action,
                        event.tool_name or None,
                        event.tool_input_hash or None,
                        event.user_id_hash or None,
                        event.llm_provider,
                        1 if event.llm_disclosed else 0,
                        event.weight_source,
                        event.duration_ms,
                        event.status,
                        event.error_type,
                        metadata_json,
                    ),
                )
                conn.commit()
        except Exception:
            logger.exception("Failed to write audit event; event lost")
            return ""

        return event_id

    def log_tool_call(
        self,
        tool_name: str,
        tool_input: Any = None,
        *,
        user_id: str | None = None,
        llm_provider: str | None = None,
        llm_disclosed: bool = False,
        weight_source: str | None = None,
        duration_ms: float | None = None,
        status: str = "success",
        error_type: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> str:
        """Log a tool invocation. ``tool_input`` and ``user_id`` are hashed."""
        return self.log_event(AuditEvent(
            action="tool_invocation",
            tool_name=tool_name,
            tool_input_hash=hash_value(tool_input) if tool_input else "",
            user_id_hash=hash_value(user_id) if user_id else "",
            llm_provider=llm_provider,
            llm_disclosed=llm_disclosed,
            weight_source=weight_source,
            duration_ms=duration_ms,
            status=status,
            error_type=error_type,
            metadata=metadata or {},
        ))

    def log_data_delete(
        self,
        *,
        tool_name: str = "",
        user_id: str | None = None,
        count: int = 0,
    ) -> str:
        return self.log_event(AuditEvent(
            action="data_delete",
            tool_name=tool_name,
            user_id_hash=hash_value(user_id) if user_id else "",
            metadata={"records_deleted": count},
        ))

    # ---------------------------------------------------------------
    # Read
    # ---------------------------------------------------------------

    def get_events(
        self,
        *,
        action: str | None = None,
        tool_name: str | None = None,
        user_id: str | None = None,
        since: str | None = None,
        limit: int = 50,
    ) -> list[dict[str, Any]]:
        """Query audit events with optional filters, newest first."""
        conditions: list[str] = []
        params: list[Any] = []

        if action:
            conditions.append("action = ?")
            params.append(action)
        if tool_name:
            conditions.append("tool_name = ?")
            params.append(tool_name)
        if user_id:
            conditions.append("user_id_hash = ?")
            params.append(hash_value(user_id))
        if since:
            conditions.append("timestamp >= ?")
            params.append(since)

        where = (" WHERE " + " AND ".join(conditions)) if conditions else ""
        query = f"SELECT * FROM audit_log{where} ORDER BY timestamp DESC, rowid DESC LIMIT ?"
        params.append(limit)

        rows = self._db.connection.execute(query, params).fetchall()
        return [dict(row) for row in rows]

    def count_events(self, *, since: str | None = None) -> int:
        if since:
            row = self._db.connection.execute(
                "SELECT COUNT(*) FROM audit_log WHERE timestamp >= ?", (since,)
            ).fetchone()
        else:
            row = self._db.connection.execute("SELECT COUNT(*) FROM audit_log").fetchone()
        return row[0]

    def count_disclosures(self, *, since: str | None = None) -> int:
        """How many scoring runs sent profile facts to an external advisor."""
        if since:
            row = self._db.connection.execute(
                "SELECT COUNT(*) FROM audit_log WHERE llm_disclosed = 1 AND timestamp >= ?",
                (since,),
            ).fetchone()
        else:
            row = self._db.connection.execute(
                "SELECT COUNT(*) FROM audit_log WHERE llm_disclosed = 1"
            ).fetchone()
        return row[0]
