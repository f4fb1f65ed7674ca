"""All-time personal records per tracked metric."""

from __future__ import annotations

from typing import Mapping

from vitalscore.domains.health.domain_logic.score_models import MetricSample, PersonalRecord

# record type -> (sample field, higher is better)
RECORD_TYPES: dict[str, tuple[str, bool]] = {
    "highest_hrv": ("hrv", True),
    "best_deep_sleep": ("deep_sleep_minutes", True),
    "best_recovery": ("recovery_score", True),
    "highest_steps": ("steps", True),
    "lowest_resting_hr": ("resting_heart_rate", False),
}


def detect_personal_records(
    sample: MetricSample, existing: Mapping[str, PersonalRecord]
) -> list[PersonalRecord]:
    """Return records that ``sample`` beats (strictly) or sets for the first time."""
    new_records: list[PersonalRecord] = []
    metrics = sample.metrics()

    for record_type, (field_name, higher_is_better) in RECORD_TYPES.items():
        value = metrics[field_name]
        if value is None:
            continue

        current = existing.get(record_type)
        if current is not None:
            improved = value > current.record_value if higher_is_better else value < current.record_value
            if not improved:
                continue

        new_records.append(PersonalRecord(
            user_id=sample.user_id,
            record_type=record_type,
            record_value=value,
            previous_record=current.record_value if current is not None else None,
            achieved_date=sample.date,
        ))

    return new_records
