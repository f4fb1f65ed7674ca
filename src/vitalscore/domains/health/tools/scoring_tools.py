"""MCP tools for daily health scoring.

Input tools (samples, profile, baselines) feed the store; the scoring tool
runs the full pipeline; read tools expose stored scores and anomalies.
Every tool returns a JSON string.
"""

from __future__ import annotations

import json
import logging
import time
from datetime import date, datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any

from fastmcp import Context, FastMCP

from vitalscore.domains.health.domain_logic.composite_scorer import score_label
from vitalscore.domains.health.domain_logic.errors import VitalScoreError
from vitalscore.domains.health.domain_logic.percentile_classifier import (
    classify_physiology as classify_averages,
)
from vitalscore.domains.health.domain_logic.score_models import (
    METRIC_TYPES,
    Baseline,
    MetricSample,
    UserProfile,
)

if TYPE_CHECKING:
    from vitalscore.core.audit.logger import AuditLogger
    from vitalscore.core.storage.repository import HealthRepository
    from vitalscore.domains.health.connectors.memory import InMemoryHealthStore
    from vitalscore.domains.health.domain_logic.pipeline import HealthScoringPipeline

logger = logging.getLogger(__name__)


def _parse_date(value: str, field_name: str = "date") -> date:
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise ValueError(f"{field_name} must be an ISO 8601 date (YYYY-MM-DD), got {value!r}") from exc


def _error(message: str, **extra: Any) -> str:
    return json.dumps({"status": "error", "message": message, **extra})


def register_scoring_tools(
    mcp: FastMCP,
    store: HealthRepository | InMemoryHealthStore,
    pipeline: HealthScoringPipeline,
    *,
    llm_provider: str = "none",
    audit_logger: AuditLogger | None = None,
) -> None:
    """Register scoring, input and history tools on the MCP server."""

    def _audit(tool_name: str, tool_input: dict, user_id: str, start_time: float, **kwargs: Any) -> None:
        if audit_logger is None:
            return
        audit_logger.log_tool_call(
            tool_name=tool_name,
            tool_input=tool_input,
            user_id=user_id,
            duration_ms=(time.monotonic() - start_time) * 1000,
            **kwargs,
        )

    # ------------------------------------------------------------------
    # Inputs
    # ------------------------------------------------------------------

    @mcp.tool
    async def record_metric_sample(
        ctx: Context,
        user_id: str,
        date: str,
        source: str = "manual",
        hrv: float | None = None,
        resting_heart_rate: float | None = None,
        deep_sleep_minutes: float | None = None,
        sleep_score: float | None = None,
        recovery_score: float | None = None,
        steps: float | None = None,
    ) -> str:
        """Store one day of wearable metrics for a user and source.

        A later call for the same user, date and source replaces the earlier one.

        Args:
            user_id: User identifier.
            date: Calendar date of the measurements (ISO 8601, e.g. '2026-03-01').
            source: Wearable or app the values came from (e.g. 'oura', 'whoop').
            hrv: Heart rate variability in milliseconds.
            resting_heart_rate: Resting heart rate in BPM.
            deep_sleep_minutes: Minutes of deep sleep.
            sleep_score: Vendor sleep score (0-100).
            recovery_score: Vendor recovery or readiness score (0-100).
            steps: Step count.
        """
        try:
            day = _parse_date(date)
        except ValueError as exc:
            return _error(str(exc))

        sample = MetricSample(
            user_id=user_id,
            date=day,
            source=source,
            hrv=hrv,
            resting_heart_rate=resting_heart_rate,
            deep_sleep_minutes=deep_sleep_minutes,
            sleep_score=sleep_score,
            recovery_score=recovery_score,
            steps=steps,
        )
        recorded = [name for name, value in sample.metrics().items() if value is not None]
        if not recorded:
            return _error("No metrics provided")

        store.upsert_sample(sample)
        logger.info("Metric sample saved: date=%s source=%s fields=%s", day.isoformat(), source, recorded)
        return json.dumps({
            "status": "saved",
            "date": day.isoformat(),
            "source": source,
            "recorded_metrics": recorded,
        })

    @mcp.tool
    async def set_user_profile(
        ctx: Context,
        user_id: str,
        age: int,
        sex: str = "other",
        conditions: list[str] | None = None,
    ) -> str:
        """Set the demographics used to pick age/sex reference curves.

        Args:
            user_id: User identifier.
            age: Age in years.
            sex: 'male', 'female' or 'other'.
            conditions: Any of 'heart_failure', 'diabetes', 'chronic_kidney_disease'.
        """
        if age < 0:
            return _error("age must not be negative")
        try:
            profile = UserProfile(age=age, sex=sex, conditions=frozenset(conditions or []))
        except ValueError as exc:
            return _error(str(exc))

        store.set_profile(user_id, profile)
        return json.dumps({
            "status": "saved",
            "age": profile.age,
            "sex": profile.sex,
            "conditions": sorted(profile.conditions),
        })

    @mcp.tool
    async def set_baseline(
        ctx: Context,
        user_id: str,
        metric_type: str,
        mean_value: float,
        std_deviation: float,
        sample_count: int | None = None,
        window_end: str = "",
    ) -> str:
        """Store a rolling baseline computed upstream for one metric.

        Args:
            user_id: User identifier.
            metric_type: One of 'hrv', 'deep_sleep', 'resting_hr', 'steps', 'recovery'.
            mean_value: Mean of the metric over the baseline window.
            std_deviation: Standard deviation over the window.
            sample_count: Number of days in the window.
            window_end: Last date included in the window (ISO 8601), if known.
        """
        if metric_type not in METRIC_TYPES:
            return _error(f"metric_type must be one of {list(METRIC_TYPES)}")
        if std_deviation < 0:
            return _error("std_deviation must not be negative")
        try:
            end = _parse_date(window_end, "window_end") if window_end else None
        except ValueError as exc:
            return _error(str(exc))

        store.upsert_baseline(Baseline(
            user_id=user_id,
            metric_type=metric_type,
            mean_value=mean_value,
            std_deviation=std_deviation,
            sample_count=sample_count,
            window_end=end,
        ))
        return json.dumps({"status": "saved", "metric_type": metric_type})

    # ------------------------------------------------------------------
    # Scoring
    # ------------------------------------------------------------------

    @mcp.tool
    async def calculate_health_score(
        ctx: Context,
        user_id: str,
        date: str = "",
    ) -> str:
        """Calculate and store the daily health score for a user.

        Combines HRV, sleep, recovery and activity sub-scores with weights
        that may be tailored to the user's age and conditions, then checks
        today's values against the user's baselines and personal records.

        Args:
            user_id: User identifier.
            date: Day to score (ISO 8601). Defaults to the latest day with data.
        """
        start_time = time.monotonic()
        tool_input = {"user_id": user_id, "date": date}

        try:
            target = _parse_date(date) if date else None
            result = await pipeline.run(user_id, target)
        except (VitalScoreError, ValueError) as exc:
            _audit(
                "calculate_health_score", tool_input, user_id, start_time,
                llm_provider=llm_provider,
                status="failure",
                error_type=type(exc).__name__,
            )
            return _error(str(exc), error_type=type(exc).__name__)
        except Exception as exc:
            _audit(
                "calculate_health_score", tool_input, user_id, start_time,
                llm_provider=llm_provider,
                status="failure",
                error_type=type(exc).__name__,
            )
            raise

        record = result.record
        weight_source = record.weights.source
        _audit(
            "calculate_health_score", tool_input, user_id, start_time,
            llm_provider=llm_provider,
            llm_disclosed=(weight_source == "advisory"),
            weight_source=weight_source,
            metadata={"anomalies": len(result.anomalies), "new_records": len(result.new_records)},
        )

        return json.dumps({
            "status": "ok",
            **record.to_dict(),
            "label": score_label(record.overall_score),
            "anomalies": [e.to_dict() for e in result.anomalies],
            "new_personal_records": [pr.to_dict() for pr in result.new_records],
            "samples_considered": result.samples_considered,
        }, indent=2)

    @mcp.tool
    async def classify_physiology(
        ctx: Context,
        user_id: str,
        avg_hrv: float,
        avg_deep_sleep: float,
    ) -> str:
        """Place average HRV and deep sleep within age/sex reference ranges.

        Args:
            user_id: User identifier (the stored profile supplies age and sex).
            avg_hrv: Average HRV in milliseconds.
            avg_deep_sleep: Average deep sleep in minutes.
        """
        try:
            result = classify_averages(avg_hrv, avg_deep_sleep, store.get_profile(user_id))
        except VitalScoreError as exc:
            return _error(str(exc), error_type=type(exc).__name__)
        return json.dumps({"status": "ok", **result.to_dict()}, indent=2)

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    @mcp.tool
    async def get_health_scores(
        ctx: Context,
        user_id: str,
        days: int = 30,
    ) -> str:
        """List stored daily scores, newest first.

        Args:
            user_id: User identifier.
            days: How many days back to include (default: 30).
        """
        if days < 1:
            return _error("days must be at least 1")
        since = datetime.now(timezone.utc).date() - timedelta(days=days - 1)
        records = store.get_health_scores(user_id, since=since)
        return json.dumps({
            "status": "ok",
            "count": len(records),
            "scores": [
                {
                    "date": r.date.isoformat(),
                    "overall_score": r.overall_score,
                    "label": score_label(r.overall_score),
                    "weight_source": r.weights.source,
                }
                for r in records
            ],
        }, indent=2)

    @mcp.tool
    async def get_anomaly_events(
        ctx: Context,
        user_id: str,
        limit: int = 20,
    ) -> str:
        """List recent baseline anomalies, newest first.

        Args:
            user_id: User identifier.
            limit: Maximum number of events (default: 20).
        """
        events = store.get_anomaly_events(user_id, limit=max(1, limit))
        return json.dumps({
            "status": "ok",
            "count": len(events),
            "events": [e.to_dict() for e in events],
        }, indent=2)

    @mcp.tool
    async def delete_user_data(
        ctx: Context,
        user_id: str,
        confirm: str = "",
    ) -> str:
        """Permanently delete every stored sample, score and record for a user.

        Args:
            user_id: User identifier.
            confirm: Must be exactly 'DELETE' to proceed. Safety gate.
        """
        if confirm != "DELETE":
            return json.dumps({
                "status": "cancelled",
                "message": (
                    "To delete this user's data, call this tool with "
                    "confirm='DELETE'. This action cannot be undone."
                ),
            })

        count = store.delete_user_data(user_id)
        if audit_logger is not None:
            audit_logger.log_data_delete(tool_name="delete_user_data", user_id=user_id, count=count)
        return json.dumps({"status": "deleted", "records_deleted": count})
